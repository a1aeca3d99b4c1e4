import io
import os
import sys
from pathlib import Path

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("RELAY_BASE", "https://corsproxy.io/")
os.environ.setdefault("RELAY_CDN_HOSTS", "cdn.pandascore.co")
os.environ.setdefault("ENABLE_LOGO_MEMO", "false")


def make_png(width: int = 64, height: int = 64, color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def png_bytes():
    return make_png


@pytest.fixture()
def no_logo_retries(monkeypatch):
    from schedule_graphic.core.config import settings

    monkeypatch.setattr(settings, "logo_fetch_retries", 0, raising=False)
    return settings


@pytest.fixture()
def backgrounds_dir(tmp_path, monkeypatch):
    from schedule_graphic.core.config import settings

    root = tmp_path / "backgrounds"
    root.mkdir()
    monkeypatch.setattr(settings, "backgrounds_dir", str(root), raising=False)
    return root
