"""ComfyUI workflow builders for the orchestrator and NSFW agents.

Loads API-format workflow templates from ``comfyui_templates/`` and injects
runtime parameters by node id:

- Node 1: checkpoint (CheckpointLoaderSimple)
- Node 2: motion module (ADE_AnimateDiffLoaderGen1, video only)
- Node 3 / 4: positive / negative prompt (CLIPTextEncode)
- Node 5: latent size and frame count (EmptyLatentImage)
- Node 6: sampler (KSampler)
- Node 8: video muxing (VHS_VideoCombine, video only)
- Node 9: image output (SaveImage, image only)

Image-driven modes add nodes 10-13 (LoadImage -> ImageScale ->
[RepeatImageBatch] -> VAEEncode) and feed the encoded latent to the sampler.
An audio track adds node 20 (LoadAudio) wired into node 8.
"""

import copy
import json
import logging
import random
from pathlib import Path
from typing import Optional

from vidagents.schemas.video import NormalizedAgentConfig

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).resolve().parent / "comfyui_templates"

QUALITY_STEPS: dict[str, int] = {
    "draft": 12,
    "high": 25,
    "ultra": 40,
}
DEFAULT_STEPS = QUALITY_STEPS["high"]

DEFAULT_NEGATIVE_PROMPT = (
    "blurry, low quality, worst quality, jpeg artifacts, watermark, text, "
    "deformed, disfigured, extra limbs, poorly drawn hands, poorly drawn face, "
    "static, flickering"
)

# Appended to the negative prompt of SFW requests by safety level
SAFETY_NEGATIVE_TERMS: dict[str, str] = {
    "none": "",
    "medium": "nsfw, nude",
    "strict": "nsfw, nude, naked, explicit, gore, violence, blood",
}

# Default img2img / img2vid denoise when motionStrength is unset
DEFAULT_IMAGE_DENOISE = 0.75

# Module-level cache for loaded templates
_cached_templates: dict[str, dict] = {}


def _load_template(name: str) -> dict:
    """Load an API-format workflow template, caching the result."""
    if name not in _cached_templates:
        path = _TEMPLATE_DIR / name
        with open(path) as f:
            _cached_templates[name] = json.load(f)
        logger.info("Loaded ComfyUI workflow template from %s", path)
    return _cached_templates[name]


def steps_for_quality(quality: Optional[str]) -> int:
    return QUALITY_STEPS.get(quality or "", DEFAULT_STEPS)


def resolve_seed(config: NormalizedAgentConfig) -> int:
    """Use the requested seed, else draw a fresh one."""
    if config.seed is not None:
        return config.seed
    return random.randint(0, 2**31 - 1)


def compose_prompt(prompt: str, config: NormalizedAgentConfig) -> str:
    """Fold motion and position hints into the positive prompt."""
    parts = [prompt]
    if config.motion:
        parts.append(config.motion)
    if config.position:
        parts.append(config.position)
    return ", ".join(p for p in parts if p)


def compose_negative_prompt(config: NormalizedAgentConfig) -> str:
    """User negative prompt (or the default) plus safety terms for SFW requests."""
    parts = [config.negative_prompt or DEFAULT_NEGATIVE_PROMPT]
    if config.genre != "nsfw" and config.safety:
        parts.append(SAFETY_NEGATIVE_TERMS.get(config.safety, ""))
    return ", ".join(p for p in parts if p)


def _attach_source_image(
    workflow: dict,
    *,
    image_filename: str,
    width: int,
    height: int,
    frames: Optional[int],
    denoise: float,
) -> None:
    """Replace the empty latent with an encoded (optionally repeated) source image."""
    workflow["10"] = {
        "class_type": "LoadImage",
        "inputs": {"image": image_filename},
    }
    workflow["11"] = {
        "class_type": "ImageScale",
        "inputs": {
            "upscale_method": "lanczos",
            "width": width,
            "height": height,
            "crop": "center",
            "image": ["10", 0],
        },
    }
    pixels = ["11", 0]
    if frames is not None:
        workflow["12"] = {
            "class_type": "RepeatImageBatch",
            "inputs": {"image": ["11", 0], "amount": frames},
        }
        pixels = ["12", 0]
    workflow["13"] = {
        "class_type": "VAEEncode",
        "inputs": {"pixels": pixels, "vae": ["1", 2]},
    }
    workflow["6"]["inputs"]["latent_image"] = ["13", 0]
    workflow["6"]["inputs"]["denoise"] = denoise
    workflow.pop("5", None)


def build_video_workflow(
    *,
    prompt: str,
    config: NormalizedAgentConfig,
    checkpoint: str,
    motion_model: str,
    seed: int,
    image_filename: Optional[str] = None,
    audio_filename: Optional[str] = None,
    sampler_name: str = "euler_ancestral",
    scheduler: str = "normal",
    cfg: float = 7.0,
    filename_prefix: str = "vidagents",
) -> dict:
    """Build ComfyUI API-format workflow for AnimateDiff text/image-to-video.

    Args:
        prompt: Positive prompt (already enhanced, if enhancement ran).
        config: Normalized agent configuration (size, length, fps, quality).
        checkpoint: SD 1.5 checkpoint filename for node 1.
        motion_model: AnimateDiff motion module filename for node 2.
        seed: Sampler seed.
        image_filename: Uploaded source image; switches to image-to-video.
        audio_filename: Uploaded audio file muxed into the output video.

    Returns:
        ComfyUI API-format prompt dict (node_id -> node_config)
    """
    workflow = copy.deepcopy(_load_template("animatediff-txt2vid.json"))
    frames = config.num_frames

    workflow["1"]["inputs"]["ckpt_name"] = checkpoint
    workflow["2"]["inputs"]["model_name"] = motion_model
    workflow["3"]["inputs"]["text"] = compose_prompt(prompt, config)
    workflow["4"]["inputs"]["text"] = compose_negative_prompt(config)
    workflow["5"]["inputs"]["width"] = config.width
    workflow["5"]["inputs"]["height"] = config.height
    workflow["5"]["inputs"]["batch_size"] = frames

    sampler = workflow["6"]["inputs"]
    sampler["seed"] = seed
    sampler["steps"] = steps_for_quality(config.quality)
    sampler["cfg"] = cfg
    sampler["sampler_name"] = sampler_name
    sampler["scheduler"] = scheduler

    combine = workflow["8"]["inputs"]
    combine["frame_rate"] = config.fps
    combine["filename_prefix"] = filename_prefix

    if image_filename:
        _attach_source_image(
            workflow,
            image_filename=image_filename,
            width=config.width,
            height=config.height,
            frames=frames,
            denoise=config.motion_strength or DEFAULT_IMAGE_DENOISE,
        )

    if audio_filename:
        workflow["20"] = {
            "class_type": "LoadAudio",
            "inputs": {"audio": audio_filename},
        }
        combine["audio"] = ["20", 0]

    return workflow


def build_image_workflow(
    *,
    prompt: str,
    config: NormalizedAgentConfig,
    checkpoint: str,
    seed: int,
    image_filename: Optional[str] = None,
    sampler_name: str = "euler_ancestral",
    scheduler: str = "normal",
    cfg: float = 7.0,
    filename_prefix: str = "vidagents",
) -> dict:
    """Build ComfyUI API-format workflow for SD text/image-to-image.

    Returns:
        ComfyUI API-format prompt dict (node_id -> node_config)
    """
    workflow = copy.deepcopy(_load_template("sd-txt2img.json"))

    workflow["1"]["inputs"]["ckpt_name"] = checkpoint
    workflow["3"]["inputs"]["text"] = compose_prompt(prompt, config)
    workflow["4"]["inputs"]["text"] = compose_negative_prompt(config)
    workflow["5"]["inputs"]["width"] = config.width
    workflow["5"]["inputs"]["height"] = config.height

    sampler = workflow["6"]["inputs"]
    sampler["seed"] = seed
    sampler["steps"] = steps_for_quality(config.quality)
    sampler["cfg"] = cfg
    sampler["sampler_name"] = sampler_name
    sampler["scheduler"] = scheduler

    workflow["9"]["inputs"]["filename_prefix"] = filename_prefix

    if image_filename:
        _attach_source_image(
            workflow,
            image_filename=image_filename,
            width=config.width,
            height=config.height,
            frames=None,
            denoise=config.motion_strength or DEFAULT_IMAGE_DENOISE,
        )

    return workflow
