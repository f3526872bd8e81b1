from __future__ import annotations

import json
from typing import Any, Optional

import httpx
from pydantic import Field

from ..elicitation import InvocationContext
from ..errors import CapabilityError
from ..registry import ToolArguments, ToolDescriptor, ToolRegistry


class ImageToolError(CapabilityError):
    pass


class ImageClient:
    """Posts generation/edit requests to an OpenAI-style images endpoint."""

    def __init__(
        self,
        generate_url: str = "http://127.0.0.1:8000/v1/images/generations",
        edit_url: str = "http://127.0.0.1:8000/v1/images/edits",
        timeout: float = 30.0,
    ) -> None:
        self.generate_url = generate_url
        self.edit_url = edit_url
        self.timeout = timeout

    async def _post(self, url: str, body: dict[str, Any], action: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body)
        except httpx.HTTPError as exc:
            raise ImageToolError(
                str(exc) or type(exc).__name__,
                hint=f"Make sure the image {action} API server is running at {url}",
            ) from exc
        if not response.is_success:
            raise ImageToolError(
                f"{response.status_code} {response.reason_phrase}\n\nError: {response.text}",
                status_code=response.status_code,
            )
        return response.json()

    async def generate(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._post(self.generate_url, body, "generation")

    async def edit(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._post(self.edit_url, body, "editing")


class GenerateImageArguments(ToolArguments):
    prompt: str = Field(max_length=4000, description="Text description of the desired image")
    model: str = Field(default="gpt-image-1", description="Model to use: flux.1-kontext-pro or gpt-image-1")
    size: str = Field(default="1024x1024", description="Image size")
    quality: Optional[str] = Field(default=None, description="Image quality")
    n: int = Field(default=1, ge=1, le=10, description="Number of images to generate")

    def request_body(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "model": self.model,
            "size": self.size,
            "quality": self.quality or "high",
            "n": self.n,
        }


class EditImageArguments(GenerateImageArguments):
    prompt: str = Field(max_length=4000, description="How to edit the image")
    image: str = Field(description="Base64-encoded image data")

    def request_body(self) -> dict[str, Any]:
        return {**super().request_body(), "image": self.image}


def _summary(headline: str, args: GenerateImageArguments, prompt_label: str) -> list[str]:
    lines = [headline, "", f'{prompt_label}: "{args.prompt}"', f"Model: {args.model}", f"Size: {args.size}"]
    if args.quality:
        lines.append(f"Quality: {args.quality}")
    return lines


def _describe_images(result: dict[str, Any], label: str) -> list[str]:
    data = result.get("data")
    if not isinstance(data, list):
        return [f"Response: {json.dumps(result, indent=2)}"]
    lines: list[str] = []
    for index, image in enumerate(data, start=1):
        if image.get("url"):
            lines.append(f"{label} {index}: {image['url']}")
        if image.get("b64_json"):
            lines.append(f"{label} {index}: Base64 data available ({len(image['b64_json'])} characters)")
    return lines


def register(registry: ToolRegistry, client: ImageClient) -> None:
    async def generate_images(args: GenerateImageArguments, ctx: InvocationContext) -> str:
        result = await client.generate(args.request_body())
        plural = "s" if args.n > 1 else ""
        lines = _summary(f"Successfully generated {args.n} image{plural}:", args, "Prompt")
        lines.append("")
        lines.extend(_describe_images(result, "Image"))
        return "\n".join(lines)

    async def edit_images(args: EditImageArguments, ctx: InvocationContext) -> str:
        result = await client.edit(args.request_body())
        plural = "s" if args.n > 1 else ""
        lines = _summary(f"Successfully edited {args.n} image{plural}:", args, "Edit Prompt")
        lines.append(f"Original Image: {args.image[:50]}...")
        lines.append("")
        lines.extend(_describe_images(result, "Edited Image"))
        return "\n".join(lines)

    registry.register(
        ToolDescriptor("generateImages", "Generate Images", "Generate images from a text prompt", GenerateImageArguments),
        generate_images,
    )
    registry.register(
        ToolDescriptor("editImages", "Edit Images", "Edit an image according to a text prompt", EditImageArguments),
        edit_images,
    )
