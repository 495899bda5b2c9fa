"""
Replicate model runner.

Wraps the replicate SDK so every failure surfaces as a GenerationError.
Model versions and inputs are opaque provider configuration; they are kept
here exactly as the canvas was tuned against them.
"""
from __future__ import annotations

from logging import getLogger
from typing import Any, Callable, Dict, List, Optional

import httpx
import replicate
from replicate.exceptions import ModelError, ReplicateError, ReplicateException

from imagecanvas.core.Errors import GenerationError

logger = getLogger(__name__)

TEXT_TO_IMAGE_MODEL = "stability-ai/sdxl:d830ba5dabf8090ec0db6c10fc862c6eb1c929e1a194a5411852d25fd954ac82"
IMAGE_TO_IMAGE_MODEL = "stability-ai/stable-diffusion-img2img:15a3689ee13b0d2616e98820eca31d4c3abcd36672df6afce5cb6feb1d66087d"
SKETCH_TO_IMAGE_MODEL = "jagilley/controlnet-scribble:435061a1b5a4c1e26740464bf786efdfa9cb3a3ac488595a2de23e143fdb0117"
UPSCALE_MODEL = "nightmareai/real-esrgan:42fed1c4974146d4d2414e2be2c5277c7fcf05fcc3a73abf41610695738c1d7b"


def text_to_image_input(prompt: str) -> Dict[str, Any]:
    return {
        "prompt": prompt,
        "num_outputs": 4,
        "num_inference_steps": 50,
        "scheduler": "DDIM",
        "guidance_scale": 7.5,
        "prompt_strength": 0.8,
        "refine": "expert_ensemble_refiner",
        "high_noise_fraction": 0.8,
        "lora_scale": 0.6,
        "height": 1024,
        "width": 1024,
        "seed": 1,
    }


def image_to_image_input(prompt: str, url: str) -> Dict[str, Any]:
    return {
        "prompt": prompt,
        "image": url,
        "width": 1024,
        "height": 1024,
        "num_outputs": 1,
        "guidance_scale": 7.5,
        "prompt_strength": 0.92,
        "num_inference_steps": 50,
    }


def sketch_to_image_input(prompt: str, url: str) -> Dict[str, Any]:
    return {
        "prompt": prompt,
        "image": url,
        "image_resolution": "768",
        "num_outputs": 1,
    }


def upscale_input(url: str) -> Dict[str, Any]:
    return {"image": url, "scale": 2}


class ReplicateClient:

    def __init__(self, api_token: Optional[str], client_factory: Callable[..., Any] = replicate.Client,
                 timeout: Optional[float] = None) -> None:
        self.api_token = api_token
        self.client_factory = client_factory
        self.timeout = timeout
        self._configured_client: Optional[Any] = None

    def _client(self, token: Optional[str]) -> Any:
        # The server's own token wins over one supplied with the request
        if self.api_token:
            if self._configured_client is None:
                self._configured_client = self.client_factory(api_token=self.api_token, timeout=self.timeout)
            return self._configured_client
        if not token:
            raise GenerationError("No Replicate API token configured")
        return self.client_factory(api_token=token, timeout=self.timeout)

    def run(self, model: str, inputs: Dict[str, Any], token: Optional[str] = None) -> Any:
        """Run a model version to completion and return its raw output."""
        client = self._client(token)
        logger.info(f"Running {model.split(':', 1)[0]}")
        try:
            return client.run(model, input=inputs, use_file_output=False)
        except ReplicateError as exc:
            raise GenerationError("Replicate API error", status=exc.status, detail=str(exc.detail or "")) from exc
        except ModelError as exc:
            raise GenerationError(f"Prediction failed: {exc}") from exc
        except (ReplicateException, httpx.HTTPError) as exc:
            raise GenerationError(f"Replicate request failed: {exc}") from exc

    def imagine(self, prompt: str, token: Optional[str] = None) -> List[str]:
        return _as_list(self.run(TEXT_TO_IMAGE_MODEL, text_to_image_input(prompt), token))

    def image_to_image(self, prompt: str, url: str, token: Optional[str] = None) -> List[str]:
        return _as_list(self.run(IMAGE_TO_IMAGE_MODEL, image_to_image_input(prompt, url), token))

    def sketch_to_image(self, prompt: str, url: str, token: Optional[str] = None) -> List[str]:
        # The first output is the detected scribble map, not a generated image
        return _as_list(self.run(SKETCH_TO_IMAGE_MODEL, sketch_to_image_input(prompt, url), token))[1:]

    def upscale(self, url: str, token: Optional[str] = None) -> str:
        outputs = _as_list(self.run(UPSCALE_MODEL, upscale_input(url), token))
        if not outputs:
            raise GenerationError("Upscale returned no image")
        return outputs[0]


def _as_list(output: Any) -> List[str]:
    if output is None:
        return []
    if isinstance(output, str):
        return [output]
    if not isinstance(output, (list, tuple)):
        raise GenerationError(f"Unexpected model output {output!r}")
    return [str(item) for item in output]
