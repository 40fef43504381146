"""Subprocess encoders: pngquant for palette PNG, ffmpeg for AVIF.

Each call spawns a fresh process with an argument vector (never a shell),
feeds the image on stdin and waits at most ``timeout`` seconds. Missing
executables, crashes, timeouts, non-zero exits and empty output all raise
``ExternalToolFailure``.
"""

from __future__ import annotations

import contextlib
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable

from image_transcoder.logger import get_logger

from .errors import ExternalToolFailure

_logger = get_logger("external")

DEFAULT_TIMEOUT_S = 30.0
_STDERR_LOG_LIMIT = 500

Runner = Callable[..., subprocess.CompletedProcess]


class ProcessEncoder(ABC):
    """One external tool invocation per ``encode`` call."""

    tool = "external"

    def __init__(self, executable: str, *, timeout: float = DEFAULT_TIMEOUT_S, runner: Runner | None = None) -> None:
        self.executable = (executable or "").strip()
        self.timeout = float(timeout)
        self._runner = runner

    @property
    def configured(self) -> bool:
        return bool(self.executable)

    def _run(self, args: list[str], stdin: bytes) -> subprocess.CompletedProcess:
        if not self.configured:
            raise ExternalToolFailure(f"{self.tool} executable path is not configured")
        runner = self._runner or subprocess.run
        _logger.debug("spawn %s: %s", self.tool, args)
        try:
            proc = runner(
                args,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalToolFailure(f"{self.tool} timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise ExternalToolFailure(f"{self.tool} could not be started: {e}") from e

        stderr = proc.stderr or b""
        if proc.returncode != 0:
            _logger.debug("%s stderr: %s", self.tool, stderr[:_STDERR_LOG_LIMIT])
            raise ExternalToolFailure(
                f"{self.tool} exited with code {proc.returncode}",
                returncode=proc.returncode,
                stderr=stderr,
            )
        return proc

    @abstractmethod
    def encode(self, data: bytes, *, has_alpha: bool = False) -> bytes:
        """Encode ``data`` (PNG bytes) and return the tool's output."""


class PngquantEncoder(ProcessEncoder):
    tool = "pngquant"

    def __init__(
        self,
        executable: str,
        quality: str = "65-80",
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        runner: Runner | None = None,
    ) -> None:
        super().__init__(executable, timeout=timeout, runner=runner)
        self.quality = (quality or "65-80").strip()

    def build_args(self) -> list[str]:
        # "-" reads stdin and writes the result to stdout.
        return [self.executable, "--quality", self.quality, "-"]

    def encode(self, data: bytes, *, has_alpha: bool = False) -> bytes:
        proc = self._run(self.build_args(), data)
        out = proc.stdout or b""
        if not out:
            raise ExternalToolFailure("pngquant produced no output", returncode=proc.returncode)
        return bytes(out)


class FfmpegAvifEncoder(ProcessEncoder):
    tool = "ffmpeg"

    def __init__(
        self,
        executable: str,
        crf: int = 23,
        preset: str = "medium",
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        runner: Runner | None = None,
    ) -> None:
        super().__init__(executable, timeout=timeout, runner=runner)
        self.crf = int(crf)
        self.preset = (preset or "medium").strip()

    def build_args(self, output_path: str, *, has_alpha: bool = False) -> list[str]:
        args = [self.executable, "-y", "-hide_banner", "-loglevel", "error", "-i", "pipe:0"]
        if has_alpha:
            # Colour and alpha planes as two streams of one AVIF.
            args += ["-filter:v:0", "format=rgba", "-filter:v:1", "alphaextract", "-map", "0", "-map", "0"]
        args += [
            "-c:v",
            "libaom-av1",
            "-crf",
            str(self.crf),
            "-preset",
            self.preset,
            "-still-picture",
            "1",
            output_path,
        ]
        return args

    def encode(self, data: bytes, *, has_alpha: bool = False) -> bytes:
        # The AVIF muxer needs a seekable output, so ffmpeg writes a temp file.
        fd, output_path = tempfile.mkstemp(prefix="image_transcoder_", suffix=".avif")
        os.close(fd)
        try:
            self._run(self.build_args(output_path, has_alpha=has_alpha), data)
            with open(output_path, "rb") as f:
                out = f.read()
        except OSError as e:
            raise ExternalToolFailure(f"ffmpeg output could not be read: {e}") from e
        finally:
            with contextlib.suppress(OSError):
                os.unlink(output_path)
        if not out:
            raise ExternalToolFailure("ffmpeg produced no output")
        return out
