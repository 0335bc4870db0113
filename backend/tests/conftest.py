"""Shared fixtures: fake generation services behind httpx.MockTransport."""

import json

import httpx
import pytest

from vidagents.config import BackendsConfig, DispatchConfig, Settings, SourceImageConfig
from vidagents.services.video_agent_manager import VideoAgentManager

COMFY_URL = "http://comfy.test:8188"
SD_URL = "http://sd.test:7860"
DEFORUM_URL = "http://deforum.test:9000"
PIPER_URL = "http://piper.test:5000"
IMAGE_URL = "http://images.test/still.png"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24

COMFY_OUTPUTS = {
    "8": {"gifs": [{"filename": "vidagents_00001.mp4", "subfolder": "", "type": "output"}]},
    "9": {"images": [{"filename": "vidagents_00001_.png", "subfolder": "", "type": "output"}]},
}


class FakeBackends:
    """Routes requests by host to canned ComfyUI / SD / Deforum / Piper answers."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.unreachable: set[str] = set()
        self.sd_status = 200
        self.sd_read_timeout = False
        self.comfy_status = {"status_str": "success", "completed": True}
        self.comfy_outputs = COMFY_OUTPUTS
        self.deforum_status = "SUCCEEDED"
        self.transport = httpx.MockTransport(self.handler)

    # -- inspection helpers ------------------------------------------------

    def calls(self, host: str, method: str = None, path: str = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host == host
            and (method is None or r.method == method)
            and (path is None or r.url.path == path)
        ]

    def json_body(self, host: str, method: str, path: str) -> dict:
        matches = self.calls(host, method, path)
        assert matches, f"no {method} {host}{path} request"
        return json.loads(matches[-1].content)

    def queued_workflow(self) -> dict:
        return self.json_body("comfy.test", "POST", "/prompt")["prompt"]

    # -- routing -----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if host == "comfy.test":
            return self._comfy(request)
        if host == "sd.test":
            return self._sd(request)
        if host == "deforum.test":
            return self._deforum(request)
        if host == "piper.test":
            return httpx.Response(200, content=b"RIFF\x24\x00\x00\x00WAVEfmt ")
        if host == "images.test":
            return httpx.Response(200, content=PNG_BYTES)
        return httpx.Response(404, text="unknown host")

    def _comfy(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/upload/image":
            return httpx.Response(200, json={"name": "uploaded.bin", "subfolder": "", "type": "input"})
        if path == "/prompt":
            return httpx.Response(200, json={"prompt_id": "p1", "number": 1, "node_errors": {}})
        if path == "/history/p1":
            return httpx.Response(
                200, json={"p1": {"status": self.comfy_status, "outputs": self.comfy_outputs}}
            )
        return httpx.Response(404, text="not found")

    def _sd(self, request: httpx.Request) -> httpx.Response:
        if self.sd_read_timeout and request.url.path == "/sdapi/v1/img2vid":
            raise httpx.ReadTimeout("render still running", request=request)
        if self.sd_status != 200:
            return httpx.Response(self.sd_status, text="bad request")
        path = request.url.path
        if path == "/sdapi/v1/txt2img":
            return httpx.Response(200, json={"images": ["aGVsbG8="], "parameters": {}})
        if path == "/sdapi/v1/img2vid":
            return httpx.Response(200, json={"video_url": "/outputs/svd/clip.mp4"})
        return httpx.Response(404, text="not found")

    def _deforum(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/deforum_api/batches":
            return httpx.Response(202, json={"batch_id": "b1", "job_ids": ["b1-0"]})
        if path == "/deforum_api/jobs/b1-0":
            return httpx.Response(200, json={
                "id": "b1-0",
                "status": self.deforum_status,
                "outdir": "/outputs/deforum",
                "timestring": "20240101000000",
                "message": "CUDA out of memory" if self.deforum_status == "FAILED" else None,
            })
        return httpx.Response(404, text="not found")


def build_settings(source_images: SourceImageConfig = None, **dispatch) -> Settings:
    dispatch.setdefault("poll_interval", 0.0)
    dispatch.setdefault("retry_base_delay", 0.0)
    dispatch.setdefault("retry_max_attempts", 2)
    return Settings(
        backends=BackendsConfig(
            comfyui_url=COMFY_URL,
            stable_diffusion_url=SD_URL,
            deforum_url=DEFORUM_URL,
            piper_tts_url=PIPER_URL,
        ),
        dispatch=DispatchConfig(**dispatch),
        source_images=source_images or SourceImageConfig(),
    )


@pytest.fixture
def fake():
    return FakeBackends()


@pytest.fixture
def settings():
    return build_settings()


@pytest.fixture
def manager(fake, settings):
    return VideoAgentManager.from_settings(settings, transport=fake.transport)
