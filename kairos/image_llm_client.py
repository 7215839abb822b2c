"""
Image LLM Client interface for describing event images.
Supports StubImageLLMClient (offline) and OpenAIImageLLMClient (real provider).

Clients only return the model's raw text; locating and decoding the JSON in
it is the job of the extraction pipeline.
"""

import base64
import io
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import requests
from PIL import Image, UnidentifiedImageError

from kairos.exceptions import InferenceError
from kairos.logging_helper import Log

# Maximum image size in bytes (20MB - OpenAI's limit)
MAX_IMAGE_SIZE = 20 * 1024 * 1024
# Maximum image dimensions (prevent extremely large images)
MAX_IMAGE_DIMENSION = 10000
REQUEST_TIMEOUT_SECONDS = 60

EVENT_PROMPT = """\
You are a calendar event extraction system. Your task is to analyze images and identify all calendar events, meetings, appointments, deadlines, or time-sensitive activities.

INSTRUCTIONS:
- Parse the provided image for ANY event information including meetings, appointments, deadlines, classes, social events, reminders, etc.
- Convert relative references (tomorrow, next week, Monday) to actual dates based on today being {today}
- Return ONLY the raw JSON - NO markdown formatting, NO code blocks, NO backticks, NO explanations

OUTPUT REQUIREMENTS:
- If no events found, return []

JSON SCHEMA:
[
    {{
      "title": "string (required) - descriptive event name",
      "location": "string (optional) - physical or virtual address or location name",
      "start_datetime": "string (required) - YYYY-MM-DDTHH:MM:SS, or YYYY-MM-DD when no time is given",
      "end_datetime": "string (optional) - YYYY-MM-DDTHH:MM:SS or YYYY-MM-DD",
      "description": "string (optional) - additional details such as venue info, contact details, performers",
      "all_day": "boolean (optional) - true when the event has no time of day"
    }}
]

CRITICAL: Return only the raw JSON without any markdown formatting or code block syntax.
"""


def build_prompt(today: str) -> str:
    """Fill the extraction prompt with today's date (YYYY-MM-DD)."""
    return EVENT_PROMPT.format(today=today)


def load_image(path: Union[str, Path]) -> Image.Image:
    """
    Open an image file.

    Raises:
        InferenceError: if the file is missing or not an image
    """
    try:
        image = Image.open(path)
        image.load()
    except (OSError, UnidentifiedImageError) as e:
        raise InferenceError(f"Cannot open image {path}: {e}") from e
    return image


class ImageLLMClient(ABC):
    """Abstract base class for image LLM clients."""

    @abstractmethod
    def generate(self, image: Image.Image, prompt: str) -> str:
        """
        Ask the vision model about an image.

        Args:
            image: PIL Image to analyze
            prompt: Instruction text

        Returns:
            Raw model output (may contain prose or markdown fences around JSON)

        Raises:
            InferenceError: if the model could not be queried
        """


class StubImageLLMClient(ImageLLMClient):
    """
    Stub LLM client for offline testing.
    Returns a canned response shaped like a real model answer.
    """

    def __init__(self, response: Optional[str] = None):
        self.response = response

    def generate(self, image: Image.Image, prompt: str) -> str:
        Log.section("Stub LLM Client")
        Log.info("Using stub LLM client (offline mode)")
        if self.response is not None:
            return self.response

        events = [
            {
                "title": "Sample Meeting",
                "location": "Conference Room A",
                "start_datetime": "2024-11-15T10:30:00",
                "end_datetime": "2024-11-15T11:30:00",
                "description": "Quarterly business review.\nThis is a dummy event for stub client.",
            },
            {
                "title": "Company Offsite",
                "start_date": "2024-11-20",
                "end_date": "2024-11-21",
            },
        ]
        content = "Here are the events I found:\n```json\n" + json.dumps(events, indent=2) + "\n```"
        Log.kv({"stage": "llm", "provider": "stub", "result": "success", "length": len(content)})
        return content


class OpenAIImageLLMClient(ImageLLMClient):
    """
    OpenAI Vision API client.
    Uses GPT-4o-mini for vision tasks unless another model is configured.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key from environment
            model: Chat completions model name
        """
        self.api_key = api_key
        self.api_url = "https://api.openai.com/v1/chat/completions"
        self.model = model

    def _validate_image(self, image: Image.Image) -> None:
        if image is None:
            raise InferenceError("Image is None")

        width, height = image.size
        if width == 0 or height == 0:
            raise InferenceError(f"Invalid image dimensions: {width}x{height}")

        if width > MAX_IMAGE_DIMENSION or height > MAX_IMAGE_DIMENSION:
            Log.warn(f"Image too large: {width}x{height}, may need resizing")

    def _image_to_base64(self, image: Image.Image) -> str:
        """
        Convert PIL Image to a base64 encoded JPEG.

        Raises:
            InferenceError: if the image stays over MAX_IMAGE_SIZE after recompression
        """
        # Convert to RGB if necessary (removes transparency)
        if image.mode != 'RGB':
            image = image.convert('RGB')

        for quality in (85, 60):
            buffer = io.BytesIO()
            image.save(buffer, format='JPEG', quality=quality, optimize=True)
            image_bytes = buffer.getvalue()
            if len(image_bytes) <= MAX_IMAGE_SIZE:
                base64_string = base64.b64encode(image_bytes).decode('utf-8')
                Log.info(f"Image converted to base64: {len(base64_string)} chars")
                return base64_string
            Log.warn(f"Image size {len(image_bytes)} bytes exceeds limit at quality {quality}")

        raise InferenceError("Image too large even after compression")

    def generate(self, image: Image.Image, prompt: str) -> str:
        Log.section("OpenAI LLM Client")
        Log.info(f"Using OpenAI Vision API ({self.model})")

        self._validate_image(image)
        base64_image = self._image_to_base64(image)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{base64_image}"}
                        }
                    ]
                }
            ],
            "max_tokens": 1000,
            "temperature": 0.1
        }

        Log.kv({
            "stage": "llm",
            "provider": "openai",
            "model": self.model,
            "status": "requesting",
            "image_size": f"{image.size[0]}x{image.size[1]}",
        })

        try:
            response = requests.post(
                self.api_url,
                headers=headers,
                json=payload,
                timeout=REQUEST_TIMEOUT_SECONDS
            )
            Log.info(f"API response status: {response.status_code}")
            if response.status_code != 200:
                Log.error(f"OpenAI API error: {response.text[:500]}")
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.RequestException as e:
            Log.kv({"stage": "llm", "provider": "openai", "result": "failed", "reason": "api_error", "error": str(e)})
            raise InferenceError(f"OpenAI API request failed: {e}") from e
        except ValueError as e:
            raise InferenceError(f"OpenAI API returned invalid JSON: {e}") from e

        choices = result.get('choices') or [{}]
        content = (choices[0].get('message') or {}).get('content') or ''
        if not content:
            Log.kv({"stage": "llm", "provider": "openai", "result": "failed", "reason": "empty_response"})
            raise InferenceError("Empty response from OpenAI")

        Log.kv({"stage": "llm", "provider": "openai", "result": "success", "length": len(content)})
        return content


def get_llm_client(model: Optional[str] = None) -> ImageLLMClient:
    """
    Factory function to get the appropriate LLM client.

    USE_STUB forces the offline stub. Otherwise OPENAI_API_KEY selects the
    OpenAI client, and without a key the stub is used.

    Returns:
        ImageLLMClient instance
    """
    if os.getenv("USE_STUB"):
        Log.info("USE_STUB flag set - using stub client")
        return StubImageLLMClient()

    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        Log.info("API key found - using OpenAI client")
        return OpenAIImageLLMClient(api_key, model=model or "gpt-4o-mini")

    Log.info("No API key - using stub client")
    return StubImageLLMClient()
