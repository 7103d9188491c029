"""asyncio.Protocol implementation for link framing."""

import asyncio
import logging
from collections import Counter
from collections.abc import Iterator

from paramsync_gateway.protocol.constants import BEGIN_FRAME, END_FRAME, FRAME_MAX_LEN, FRAME_MIN_LEN
from paramsync_gateway.protocol.frames import Frame

logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 256
_STAT_KEYS = ("bytes_read", "frames_read", "frames_invalid", "frames_dropped", "frames_written")


class LinkProtocol(asyncio.Protocol):
    """Splits the inbound byte stream into frames and writes outbound ones.

    Parsed frames go onto a bounded queue read by ``receive_frame``. When the
    consumer falls behind, the oldest frame is discarded; a lost PARAM_VALUE
    is re-requested by the engine like any other dropped reply. Bytes that
    cannot start a valid frame are skipped one marker at a time, so a
    corrupted frame never hides the one after it.
    """

    def __init__(self) -> None:
        self._transport: asyncio.Transport | None = None
        self._rx_buffer = bytearray()
        self._frame_queue: asyncio.Queue[Frame | None] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._counters: Counter[str] = Counter(dict.fromkeys(_STAT_KEYS, 0))

    @property
    def connected(self) -> bool:
        return self._transport is not None

    @property
    def stats(self) -> dict[str, int]:
        """Snapshot of the link counters."""
        return dict(self._counters)

    def connection_made(self, transport: asyncio.Transport) -> None:  # type: ignore[override]
        self._transport = transport
        logger.debug("Link opened")

    def connection_lost(self, exc: Exception | None) -> None:
        self._transport = None
        # None tells the reader task the link is gone
        self._enqueue(None)
        logger.debug("Link closed (exc=%s)", exc)

    def data_received(self, data: bytes) -> None:
        self._counters["bytes_read"] += len(data)
        self._rx_buffer.extend(data)
        for frame in self._drain_buffer():
            self._counters["frames_read"] += 1
            self._enqueue(frame)

    async def receive_frame(self, timeout: float | None = None) -> Frame | None:
        """Wait for the next frame.

        Returns:
            The frame, or None on timeout or after the link closed.
        """
        try:
            return await asyncio.wait_for(self._frame_queue.get(), timeout=timeout)
        except TimeoutError:
            return None

    def send_frame(self, frame: Frame) -> bool:
        """Write a frame without waiting; False when the link is closed."""
        if self._transport is None:
            return False

        raw = frame.to_bytes()
        self._transport.write(raw)
        self._counters["frames_written"] += 1
        logger.debug("Sent %s (%d bytes)", frame, len(raw))
        return True

    def reset_buffer(self) -> None:
        """Drop partial input and every frame not yet consumed."""
        self._rx_buffer.clear()
        while not self._frame_queue.empty():
            self._frame_queue.get_nowait()

    def _enqueue(self, item: Frame | None) -> None:
        if self._frame_queue.full():
            self._frame_queue.get_nowait()
            if item is not None:
                self._counters["frames_dropped"] += 1
        self._frame_queue.put_nowait(item)

    def _drain_buffer(self) -> Iterator[Frame]:
        buf = self._rx_buffer
        while len(buf) >= FRAME_MIN_LEN:
            start = buf.find(BEGIN_FRAME)
            if start < 0:
                logger.debug("Discarding %d bytes with no frame start", len(buf))
                buf.clear()
                return
            if start:
                logger.debug("Discarding %d bytes before frame start", start)
                del buf[:start]
                continue

            size = Frame.total_length(buf[1] | (buf[2] << 8))
            if size > FRAME_MAX_LEN:
                self._skip_marker(f"length {size} exceeds maximum")
                continue
            if len(buf) < size:
                return

            if buf[size - 1] != END_FRAME:
                self._skip_marker(f"end marker 0x{buf[size - 1]:02X}")
                continue

            frame = Frame.from_bytes(bytes(buf[:size]))
            if frame is None:
                self._skip_marker(f"CRC mismatch in {bytes(buf[:size]).hex()}")
                continue

            del buf[:size]
            yield frame

    def _skip_marker(self, reason: str) -> None:
        logger.warning("Invalid frame (%s), resynchronizing", reason)
        self._counters["frames_invalid"] += 1
        del self._rx_buffer[0]
