import random
from typing import List, Optional

from ideaqueue.ports.base import ImageGenerator
from ideaqueue.ports.http_utils import request_json
from ideaqueue.specs.common.errors import ConfigurationError, ExternalServiceError, GenerationFailure
from ideaqueue.specs.models.artifacts import DesignConcept
from ideaqueue.shared.logging_utils import info as log_info, warning as log_warning

FAL_FLUX_URL = "https://fal.run/fal-ai/flux/dev"
MAX_SEED = 2147483647


class FalImageGenerator(ImageGenerator):
    """Design concepts from fal.ai's FLUX dev model, one request per concept."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        width: int = 1024,
        height: int = 1024,
        steps: int = 28,
        endpoint: str = FAL_FLUX_URL,
    ) -> None:
        self._api_key = api_key
        self.width = width
        self.height = height
        self.steps = steps
        self.endpoint = endpoint

    def generate_concepts(self, prompt: str, count: int = 4, style: Optional[str] = None) -> List[DesignConcept]:
        if not self._api_key:
            raise ConfigurationError("FAL_KEY is required for image generation")
        full_prompt = f"{prompt}. Style: {style}" if style else prompt
        headers = {"Authorization": f"Key {self._api_key}", "Content-Type": "application/json"}
        log_info(None, "fal:generate", promptLength=len(full_prompt), count=count)

        concepts: List[DesignConcept] = []
        for _ in range(count):
            body = {
                "prompt": full_prompt,
                "image_size": {"width": self.width, "height": self.height},
                "num_inference_steps": self.steps,
                "seed": random.randint(0, MAX_SEED),
            }
            try:
                data = request_json("POST", self.endpoint, service="fal", headers=headers, json_body=body, timeout=120)
            except ExternalServiceError as exc:
                raise GenerationFailure(str(exc), details=exc.details) from exc
            images = data.get("images") or []
            if images and images[0].get("url"):
                concepts.append(
                    DesignConcept(imageUrl=images[0]["url"], seed=int(images[0].get("seed") or data.get("seed") or body["seed"]))
                )
        if not concepts:
            raise GenerationFailure("fal.ai returned no images", details={"requested": count})
        if len(concepts) < count:
            log_warning(None, "fal:short_batch", requested=count, returned=len(concepts))
        log_info(None, "fal:generated", count=len(concepts))
        return concepts
