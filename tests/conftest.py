import io
import threading
from datetime import datetime, timedelta

import pytest
from PIL import Image

from clipboard.memory import InMemoryClipboard
from codec.image_codec import ImageInfo
from models.errors import DecodeFailure, EncodeFailure
from models.optimization import RawImage
from services.event_bus import EventChannel
from services.optimizer_service import OptimizationPipeline
from utils.config import OptimizerConfig


def fake_png(size: int) -> bytes:
    """PNG-signed filler of an exact byte length; only FakeCodec ever reads it."""
    header = b"\x89PNG\r\n\x1a\n"
    return header + bytes((i * 7) % 251 for i in range(size - len(header)))


def real_png(width: int = 64, height: int = 48, mode: str = "RGB") -> bytes:
    image = Image.new(mode, (width, height))
    pixels = image.load()
    for x in range(width):
        for y in range(height):
            if mode == "RGBA":
                pixels[x, y] = ((x * 37) % 256, (y * 53) % 256, (x * y) % 256, 128)
            else:
                pixels[x, y] = ((x * 37) % 256, (y * 53) % 256, (x * y) % 256)
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


class FakeCodec:
    """Codec double with predictable output sizes."""

    def __init__(self, encoded_size: int = 450_000, width: int = 1920, height: int = 1080) -> None:
        self.encoded_size = encoded_size
        self.width = width
        self.height = height
        self.decoded = []
        self.fail_encode = False

    def probe(self, data: bytes) -> ImageInfo:
        if data.startswith(b"corrupt"):
            raise DecodeFailure("cannot identify image")
        return ImageInfo(format=None, width=self.width, height=self.height)

    def decode(self, data: bytes) -> RawImage:
        if data.startswith(b"corrupt"):
            raise DecodeFailure("cannot decode image")
        self.decoded.append(data)
        return RawImage(width=2, height=1, mode="RGB", data=b"\x00" * 6)

    def encode(self, raw: RawImage) -> bytes:
        if self.fail_encode:
            raise EncodeFailure("encoder crashed")
        return b"\xff\xd8" + b"j" * (self.encoded_size - 2)


class BlockingCodec(FakeCodec):
    """Holds every encode until ``release`` is set."""

    def __init__(self, encoded_size: int = 5_000) -> None:
        super().__init__(encoded_size=encoded_size)
        self.entered = threading.Event()
        self.release = threading.Event()

    def encode(self, raw: RawImage) -> bytes:
        self.entered.set()
        assert self.release.wait(5.0), "encode was never released"
        return super().encode(raw)


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeAutoStart:
    def __init__(self) -> None:
        self.enabled = False
        self.error = None

    def is_enabled(self) -> bool:
        if self.error:
            raise self.error
        return self.enabled

    def set_enabled(self, enabled: bool) -> None:
        if self.error:
            raise self.error
        self.enabled = enabled


@pytest.fixture
def clipboard():
    board = InMemoryClipboard()
    yield board
    board.close()


@pytest.fixture
def events():
    return EventChannel()


@pytest.fixture
def subscription(events):
    with events.subscribe() as sub:
        yield sub


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_pipeline(clipboard, events, clock):
    created = []

    def factory(codec=None, **config):
        pipeline = OptimizationPipeline(
            clipboard,
            codec=codec or FakeCodec(),
            events=events,
            config=OptimizerConfig(**config),
            clock=clock,
        )
        created.append(pipeline)
        return pipeline

    yield factory

    for pipeline in created:
        pipeline.stop()
