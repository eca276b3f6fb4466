import asyncio
from typing import Dict, List, NamedTuple, Optional

from mediagate.config.settings import Config, config
from mediagate.core.state import state
from mediagate.models.internal import ResolvedVideo

# ffmpeg muxer names that differ from the file extension
FFMPEG_MUXERS = {
    "mkv": "matroska",
    "m4a": "ipod",
}


class CompletedProcess(NamedTuple):
    """Subprocess result"""
    returncode: int
    stdout: bytes
    stderr: bytes


class SubprocessExecutor:
    """Execute subprocess with consistent error handling"""

    @staticmethod
    async def run(cmd: List[str], timeout: float) -> CompletedProcess:
        """
        Run subprocess with timeout and proper cleanup.
        The process is killed and reaped on timeout or cancellation.
        """
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
            return CompletedProcess(returncode=process.returncode, stdout=stdout, stderr=stderr)
        except BaseException:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise


class YTDLPCommandBuilder:
    """Build yt-dlp commands"""

    def __init__(self, cfg: Optional[Config] = None):
        self.config = cfg or config

    def _common_args(self) -> List[str]:
        cmd = [
            '--no-playlist',
            '--no-warnings',
            '--socket-timeout', str(self.config.ytdlp.socket_timeout),
            '--retries', str(self.config.ytdlp.retries),
        ]
        js_runtime = self.config.ytdlp.js_runtime or state.js_runtime
        if js_runtime:
            cmd.extend(['--js-runtimes', js_runtime])
        return cmd

    def build_info_command(self, url: str, format_str: str, password: Optional[str] = None) -> List[str]:
        """Build command dumping the info JSON for one requested format"""
        cmd = [
            self.config.ytdlp.binary,
            '--dump-single-json',
            '-f', format_str,
            '-o', self.config.ytdlp.output_template,
            *self._common_args(),
        ]

        if password:
            cmd.extend(['--video-password', password])

        cmd.extend(['--', url])
        return cmd

    def build_pipe_command(self, video: ResolvedVideo) -> List[str]:
        """Build command writing the media itself to stdout"""
        cmd = [
            self.config.ytdlp.binary,
            '-f', video.requested_format,
            '-o', '-',
            *self._common_args(),
            # NOTE: keep stdout clean, it carries the media bytes
            '--no-progress',
            '--quiet',
        ]

        if video.password:
            cmd.extend(['--video-password', video.password])

        cmd.extend(['--', video.webpage_url])
        return cmd


class FFmpegCommandBuilder:
    """Build ffmpeg commands that write to stdout"""

    def __init__(self, cfg: Optional[Config] = None):
        self.config = cfg or config

    @staticmethod
    def _input_args(url: str, http_headers: Dict[str, str]) -> List[str]:
        args = []
        if http_headers:
            args.extend(['-headers', ''.join(f"{k}: {v}\r\n" for k, v in http_headers.items())])
        args.extend(['-i', url])
        return args

    def _base(self) -> List[str]:
        return [self.config.ytdlp.ffmpeg_binary, '-hide_banner', '-loglevel', 'error', '-nostdin']

    def build_audio_command(
        self,
        video: ResolvedVideo,
        bitrate: int,
        seek_from: Optional[str] = None,
        seek_to: Optional[str] = None
    ) -> List[str]:
        """Transcode the first URL of the video to mp3"""
        cmd = self._base()
        cmd.extend(self._input_args(video.urls[0], video.http_headers))
        if seek_from:
            cmd.extend(['-ss', seek_from])
        if seek_to:
            cmd.extend(['-to', seek_to])
        cmd.extend(['-vn', '-b:a', f"{bitrate}k", '-f', 'mp3', 'pipe:1'])
        return cmd

    def build_convert_command(self, video: ResolvedVideo, bitrate: int, file_format: str) -> List[str]:
        """Transcode the first URL of the video to an arbitrary container"""
        cmd = self._base()
        cmd.extend(self._input_args(video.urls[0], video.http_headers))
        cmd.extend([
            '-b:a', f"{bitrate}k",
            '-f', FFMPEG_MUXERS.get(file_format, file_format),
            'pipe:1',
        ])
        return cmd

    def build_m3u_command(self, video: ResolvedVideo) -> List[str]:
        """Copy a segmented HTTP manifest into a single MPEG-TS stream"""
        cmd = self._base()
        cmd.extend(self._input_args(video.urls[0], video.http_headers))
        cmd.extend(['-c', 'copy', '-f', 'mpegts', 'pipe:1'])
        return cmd

    def build_remux_command(self, video: ResolvedVideo) -> List[str]:
        """Merge a video URL and an audio URL into matroska without re-encoding"""
        video_url, audio_url = video.urls
        cmd = self._base()
        cmd.extend(self._input_args(video_url, video.http_headers))
        cmd.extend(self._input_args(audio_url, video.http_headers))
        cmd.extend([
            '-c', 'copy',
            '-map', '0:v:0',
            '-map', '1:a:0',
            '-f', 'matroska',
            'pipe:1',
        ])
        return cmd
