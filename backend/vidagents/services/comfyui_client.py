"""ComfyUI API client for locally hosted ComfyUI servers.

Provides:
- Async client for the ComfyUI HTTP API (upload, queue, history, view URLs)
- Polling loop that waits for a queued prompt to produce outputs
- Output extraction helpers for video and image save nodes

Usage:
    from vidagents.services.comfyui_client import ComfyUIClient, find_video_output

    client = ComfyUIClient("http://localhost:8188")
    filename = await client.upload_file(image_bytes, "start.png")
    prompt_id = await client.queue_prompt(workflow)
    outputs = await client.wait_for_outputs(prompt_id, timeout_s=600)
    filename, subfolder, kind = find_video_output(outputs)
    url = client.view_url(filename, subfolder, kind)
"""

import asyncio
import logging
import uuid
from typing import Optional
from urllib.parse import urlencode

from vidagents.errors import BackendJobError, BackendTimeoutError
from vidagents.services.service_client import ServiceClient

logger = logging.getLogger(__name__)

_VIDEO_OUTPUT_KEYS = ("gifs", "videos", "video", "images")
_VIDEO_EXTENSIONS = (".mp4", ".webm", ".gif", ".mov", ".mkv")
_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")


# ---------------------------------------------------------------------------
# Output extraction from ComfyUI history
# ---------------------------------------------------------------------------

def _iter_output_items(outputs: dict, keys: tuple[str, ...]):
    """Yield (filename, subfolder, type) for every file entry under ``keys``."""
    for node_id, node_output in outputs.items():
        if not isinstance(node_output, dict):
            continue
        for key in keys:
            items = node_output.get(key, [])
            if isinstance(items, dict):
                items = [items]
            if not isinstance(items, list):
                continue
            for item in items:
                if isinstance(item, dict) and item.get("filename"):
                    yield item["filename"], item.get("subfolder", ""), item.get("type", "output")


def find_video_output(outputs: dict) -> Optional[tuple[str, str, str]]:
    """Return (filename, subfolder, type) of the first video file in ``outputs``.

    VideoHelperSuite reports its combined video under ``gifs``; core
    SaveVideo nodes use ``videos``. Only files with a video extension match.
    """
    for filename, subfolder, kind in _iter_output_items(outputs, _VIDEO_OUTPUT_KEYS):
        if filename.lower().endswith(_VIDEO_EXTENSIONS):
            return filename, subfolder, kind
    return None


def find_image_output(outputs: dict) -> Optional[tuple[str, str, str]]:
    """Return (filename, subfolder, type) of the first saved image in ``outputs``."""
    for filename, subfolder, kind in _iter_output_items(outputs, ("images",)):
        if filename.lower().endswith(_IMAGE_EXTENSIONS) and kind == "output":
            return filename, subfolder, kind
    return None


# ---------------------------------------------------------------------------
# ComfyUI API client
# ---------------------------------------------------------------------------

class ComfyUIClient(ServiceClient):
    """Async client for a local ComfyUI server.

    Handles input upload, prompt queueing, history polling and output URL
    construction. Outputs are referenced by ``/view`` URL rather than
    downloaded, so the caller can hand the URL straight to the browser.
    """

    service_name = "ComfyUI"

    def __init__(self, host: str, **kwargs):
        super().__init__(host, **kwargs)
        self.client_id = uuid.uuid4().hex

    async def upload_file(
        self,
        data: bytes,
        filename: str,
        content_type: str = "image/png",
    ) -> str:
        """Upload a file into ComfyUI's input directory.

        ComfyUI serves every input type (images, audio) through the same
        endpoint. Returns the name to reference from LoadImage/LoadAudio nodes.
        """
        logger.info(
            "POST %s/upload/image filename=%s size=%d bytes",
            self.host, filename, len(data),
        )
        payload = await self._json(
            "POST",
            "/upload/image",
            files={"image": (filename, data, content_type)},
            data={"overwrite": "true"},
        )
        server_name = payload.get("name", filename)
        subfolder = payload.get("subfolder") or ""
        if subfolder:
            server_name = f"{subfolder}/{server_name}"
        logger.info("  server filename: %s", server_name)
        return server_name

    async def queue_prompt(self, workflow: dict) -> str:
        """Submit a workflow prompt for execution.

        Returns the prompt_id for history polling.
        """
        logger.info(
            "POST %s/prompt - workflow with %d nodes: %s",
            self.host, len(workflow), sorted(workflow.keys()),
        )
        data = await self._json(
            "POST",
            "/prompt",
            json={"prompt": workflow, "client_id": self.client_id},
            idempotent=False,
        )
        node_errors = data.get("node_errors") or {}
        if node_errors:
            raise BackendJobError(f"ComfyUI rejected workflow: {node_errors}")
        try:
            prompt_id = data["prompt_id"]
        except KeyError as e:
            raise BackendJobError(f"ComfyUI response missing prompt_id: {data}") from e
        logger.info("  prompt_id: %s", prompt_id)
        return prompt_id

    async def get_history(self, prompt_id: str) -> dict:
        """Get the history entry for a prompt (empty dict while still queued)."""
        data = await self._json("GET", f"/history/{prompt_id}")
        return data.get(prompt_id, {}) if isinstance(data, dict) else {}

    async def wait_for_outputs(
        self,
        prompt_id: str,
        timeout_s: float = 900.0,
        poll_interval_s: float = 2.0,
    ) -> dict:
        """Poll ``/history/{prompt_id}`` until the prompt finishes.

        ComfyUI history entries contain a ``status`` object with
        ``status_str`` ("success" / "error") and ``completed`` (bool).

        Returns:
            The per-node ``outputs`` dict of the finished prompt.

        Raises:
            BackendJobError: ComfyUI reported an execution error, or the
                prompt completed without producing any output.
            BackendTimeoutError: Not finished within ``timeout_s``.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_s
        polls = 0

        while True:
            entry = await self.get_history(prompt_id)
            polls += 1
            status = entry.get("status", {}) if entry else {}
            status_str = status.get("status_str", "")
            outputs = entry.get("outputs", {}) if entry else {}

            if status_str == "error":
                messages = status.get("messages", [])
                detail = messages[-1] if messages else "unknown error"
                raise BackendJobError(f"ComfyUI workflow failed: {detail}")

            if status.get("completed") or status_str == "success":
                if not outputs:
                    raise BackendJobError(
                        "ComfyUI workflow completed but produced no outputs. "
                        "Check that the checkpoint exists and the workflow has a save node."
                    )
                logger.info("ComfyUI %s: completed after %d polls", prompt_id, polls)
                return outputs

            logger.debug("ComfyUI %s: still running (poll %d)", prompt_id, polls)
            if loop.time() + poll_interval_s > deadline:
                raise BackendTimeoutError(
                    f"ComfyUI prompt {prompt_id} timed out after {timeout_s:.0f}s"
                )
            await asyncio.sleep(poll_interval_s)

    def view_url(self, filename: str, subfolder: str = "", output_type: str = "output") -> str:
        """Build the public ``/view`` URL for an output file."""
        params = {"filename": filename, "type": output_type}
        if subfolder:
            params["subfolder"] = subfolder
        return f"{self.host}/view?{urlencode(params)}"
