import io
import random

from PIL import Image

from clipboard.memory import InMemoryClipboard
from main import ClipSqueezeApp, build_config, parse_args
from models.formats import JPEG, PNG
from utils.config import OptimizerConfig


def noisy_png(width: int = 256, height: int = 256) -> bytes:
    rng = random.Random(0)
    image = Image.frombytes("RGB", (width, height), bytes(rng.getrandbits(8) for _ in range(width * height * 3)))
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


def test_cli_flags_override_defaults(monkeypatch):
    monkeypatch.delenv("CLIPSQUEEZE_JPEG_QUALITY", raising=False)
    args = parse_args(["--quality", "45", "--no-api", "-p", "4000"])

    config = build_config(args)

    assert args.no_api
    assert config.jpeg_quality == 45
    assert config.api_port == 4000


def test_app_optimizes_real_screenshot():
    clipboard = InMemoryClipboard()
    app = ClipSqueezeApp(OptimizerConfig(), serve_api=False, clipboard=clipboard, quiet=True)
    subscription = app.events.subscribe()
    app.start()
    try:
        original = noisy_png()
        clipboard.copy({PNG: original})
        assert app.pipeline.wait_idle(timeout=10.0)

        events = subscription.drain()
        assert [event.name for event in events] == ["optimization-start", "optimization-complete"]
        complete = events[-1]
        assert complete.original_size == len(original)
        assert complete.new_size == len(clipboard.contents[JPEG]) < len(original)

        assert app.gateway.revert_clipboard().ok
        assert clipboard.contents == {PNG: original}
    finally:
        app.stop()
    assert not app.running
