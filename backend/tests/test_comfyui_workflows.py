"""ComfyUI workflow builders."""

from vidagents.services.agent_config import build_agent_config
from vidagents.services.comfyui_workflows import (
    DEFAULT_NEGATIVE_PROMPT,
    build_image_workflow,
    build_video_workflow,
    compose_negative_prompt,
    compose_prompt,
    steps_for_quality,
)


def _video(settings=None, **kwargs):
    config = build_agent_config("a koi pond", settings or {})
    params = dict(
        prompt=config.prompt,
        config=config,
        checkpoint="ckpt.safetensors",
        motion_model="mm.ckpt",
        seed=42,
    )
    params.update(kwargs)
    return build_video_workflow(**params)


def test_video_workflow_injects_runtime_parameters():
    workflow = _video({"length": 2, "fps": 12, "aspectRatio": "1:1", "quality": "draft"})

    assert workflow["1"]["inputs"]["ckpt_name"] == "ckpt.safetensors"
    assert workflow["2"]["inputs"]["model_name"] == "mm.ckpt"
    assert workflow["5"]["inputs"] == {"width": 1024, "height": 1024, "batch_size": 24}
    assert workflow["6"]["inputs"]["steps"] == 12
    assert workflow["6"]["inputs"]["seed"] == 42
    assert workflow["8"]["inputs"]["frame_rate"] == 12


def test_video_workflow_does_not_mutate_template():
    first = _video({"fps": 8})
    first["6"]["inputs"]["seed"] = -1
    second = _video({"fps": 8})

    assert second["6"]["inputs"]["seed"] == 42


def test_image_to_video_replaces_empty_latent():
    workflow = _video({"length": 1, "fps": 8, "motionStrength": 0.4}, image_filename="in.png")

    assert "5" not in workflow
    assert workflow["10"]["inputs"]["image"] == "in.png"
    assert workflow["12"]["inputs"]["amount"] == 8
    assert workflow["13"]["inputs"]["pixels"] == ["12", 0]
    assert workflow["6"]["inputs"]["latent_image"] == ["13", 0]
    assert workflow["6"]["inputs"]["denoise"] == 0.4


def test_audio_track_is_wired_into_video_combine():
    workflow = _video(audio_filename="voice.wav")

    assert workflow["20"] == {"class_type": "LoadAudio", "inputs": {"audio": "voice.wav"}}
    assert workflow["8"]["inputs"]["audio"] == ["20", 0]


def test_image_to_image_has_no_frame_batch():
    config = build_agent_config("a koi pond", {"format": "image"}, "https://example.com/a.png")
    workflow = build_image_workflow(
        prompt=config.prompt, config=config, checkpoint="c", seed=1, image_filename="in.png",
    )

    assert "12" not in workflow
    assert workflow["13"]["inputs"]["pixels"] == ["11", 0]
    assert workflow["6"]["inputs"]["denoise"] == 0.75


def test_steps_for_quality():
    assert steps_for_quality("draft") == 12
    assert steps_for_quality("high") == 25
    assert steps_for_quality("ultra") == 40
    assert steps_for_quality(None) == 25


def test_prompt_includes_motion_and_position():
    config = build_agent_config("a koi pond", {"motion": "slow dolly in", "position": "top-down"})
    assert compose_prompt("a koi pond", config) == "a koi pond, slow dolly in, top-down"


def test_negative_prompt_adds_safety_terms_for_sfw_only():
    sfw = build_agent_config("x", {"genre": "sfw", "safety": "strict"})
    nsfw = build_agent_config("x", {"genre": "nsfw", "safety": "strict"})

    assert "explicit" in compose_negative_prompt(sfw)
    assert compose_negative_prompt(nsfw) == DEFAULT_NEGATIVE_PROMPT


def test_user_negative_prompt_replaces_default():
    config = build_agent_config("x", {"negativePrompt": "rain"})
    assert compose_negative_prompt(config) == "rain"
