"""
vox.extract.native - In-process audio export with PyAV.

Decodes the first audio stream, resamples it to planar float at a rate
the AAC encoder accepts and muxes AAC into an MP4 (M4A) container. The
export runs as a CancellableJob; a poller samples its position on a
fixed interval and the job is cancelled if it outlives the deadline.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from vox.exceptions import ExportFailedError, ExtractionTimeoutError, NoAudioTrackError
from vox.extract.base import ExtractorBackend
from vox.extract.policy import build_format
from vox.logging import get_logger
from vox.models import AudioFormat
from vox.progress import PhaseWindow
from vox.tasks import CancellableJob, JobCancelledError, JobTimeoutError
from vox.validation import backend_available

log = get_logger("extract")

AAC_SAMPLE_RATES = (8000, 11025, 16000, 22050, 32000, 44100, 48000, 88200, 96000)
DEFAULT_SAMPLE_RATE = 44100
AAC_BIT_RATE = 128_000


def _import_av() -> Any:
    try:
        import av
    except ImportError as e:
        raise ExportFailedError(
            "PyAV not installed. Install with: pip install av",
            hint="pip install av",
        ) from e
    return av


class ExportState:
    """Position of a running export, shared with the poller."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._progress = 0.0

    @property
    def progress(self) -> float:
        with self._lock:
            return self._progress

    @progress.setter
    def progress(self, value: float) -> None:
        with self._lock:
            self._progress = min(max(value, self._progress), 1.0)


class NativeExtractor(ExtractorBackend):
    name = "native"

    def __init__(self, timeout: float = 300.0, poll_interval: float = 0.1) -> None:
        self.timeout = timeout
        self.poll_interval = poll_interval

    def available(self) -> bool:
        return backend_available("av")

    def extract(self, input_path: Path, output_path: Path, window: PhaseWindow) -> AudioFormat:
        """Export the audio track in-process.

        Raises:
            NoAudioTrackError: If the container has no audio stream
            ExtractionTimeoutError: If the export outlives the deadline; the
                export thread has exited and closed output_path by then
            ExportFailedError: If PyAV is missing, or the export fails or is cancelled
        """
        av = _import_av()
        state = ExportState()
        job: CancellableJob[None] = CancellableJob(
            lambda cancel: self._export(av, input_path, output_path, state, cancel),
            timeout=self.timeout,
            name="vox-native-export",
        )

        stop = threading.Event()

        def poll() -> None:
            while not stop.wait(self.poll_interval):
                window.update(state.progress, "Exporting audio")

        poller = threading.Thread(target=poll, name="vox-export-poller", daemon=True)
        poller.start()
        try:
            job.run()
        except (JobTimeoutError, JobCancelledError) as e:
            # The muxer still holds output_path open until the export thread exits.
            if job.running:
                log.warning("Waiting for the cancelled export to release %s", output_path.name)
                job.join()
            if isinstance(e, JobTimeoutError):
                raise ExtractionTimeoutError(self.timeout) from e
            raise ExportFailedError("Audio export was cancelled") from e
        finally:
            stop.set()
            poller.join(timeout=self.poll_interval * 2)

        window.update(1.0, "Export finished")
        return self.probe(av, output_path)

    def _export(
        self,
        av: Any,
        input_path: Path,
        output_path: Path,
        state: ExportState,
        cancel: threading.Event,
    ) -> None:
        with av.open(str(input_path)) as source:
            if not source.streams.audio:
                raise NoAudioTrackError(str(input_path))
            in_stream = source.streams.audio[0]
            duration = _container_duration(av, source, in_stream)
            source_rate = in_stream.codec_context.sample_rate
            rate = source_rate if source_rate in AAC_SAMPLE_RATES else DEFAULT_SAMPLE_RATE
            layout = "mono" if len(in_stream.codec_context.layout.channels) == 1 else "stereo"
            log.debug("Exporting %s: %d Hz %s, %.2fs", input_path.name, rate, layout, duration)

            with av.open(str(output_path), mode="w", format="mp4") as sink:
                out_stream = sink.add_stream("aac", rate=rate)
                out_stream.codec_context.layout = layout
                out_stream.codec_context.bit_rate = AAC_BIT_RATE
                resampler = av.AudioResampler(format="fltp", layout=layout, rate=rate)

                for frame in source.decode(in_stream):
                    if cancel.is_set():
                        raise ExportFailedError("Audio export was cancelled")
                    for resampled in resampler.resample(frame):
                        sink.mux(out_stream.encode(resampled))
                    if duration > 0 and frame.time is not None:
                        state.progress = frame.time / duration

                for resampled in resampler.resample(None):
                    sink.mux(out_stream.encode(resampled))
                sink.mux(out_stream.encode(None))

        state.progress = 1.0

    def probe(self, av: Any, path: Path) -> AudioFormat:
        """Describe the exported file."""
        try:
            with av.open(str(path)) as container:
                if not container.streams.audio:
                    raise ExportFailedError(f"Exported file has no audio stream: {path}")
                stream = container.streams.audio[0]
                context = stream.codec_context
                return build_format(
                    codec=context.name,
                    sample_rate=context.sample_rate,
                    channels=len(context.layout.channels),
                    bit_rate=context.bit_rate or container.bit_rate or None,
                    duration=_container_duration(av, container, stream),
                    file_size=path.stat().st_size,
                )
        except av.error.FFmpegError as e:
            raise ExportFailedError(f"Cannot read exported audio: {e}") from e


def _container_duration(av: Any, container: Any, stream: Any) -> float:
    if stream.duration is not None and stream.time_base is not None:
        return float(stream.duration * stream.time_base)
    if container.duration is not None:
        return container.duration / av.time_base
    return 0.0
