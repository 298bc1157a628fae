"""
Cheque Extraction Client
Reads cheque fields from a photo through the Gemini generateContent API.
Any failure returns None so the collection form falls back to manual entry.
"""

import base64
import io
import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional

import requests
from flask import current_app
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = (1200, 800)
JPEG_QUALITY = 70

EXTRACTION_PROMPT = (
    "Extract the following details from this cheque image: Cheque Number, Bank Name, "
    "Branch Name, Amount (numeric), and Date (YYYY-MM-DD format if possible). "
    "If a field is not visible, use null."
)

RESPONSE_SCHEMA = {
    'type': 'OBJECT',
    'properties': {
        'cheque_number': {'type': 'STRING'},
        'bank': {'type': 'STRING'},
        'branch': {'type': 'STRING'},
        'amount': {'type': 'NUMBER'},
        'date': {'type': 'STRING', 'description': 'YYYY-MM-DD format'},
    },
    'required': ['amount'],
}


@dataclass
class ChequeData:
    cheque_number: Optional[str] = None
    bank: Optional[str] = None
    branch: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[str] = None

    @classmethod
    def from_dict(cls, data):
        amount = data.get('amount')
        if amount is not None:
            amount = float(amount)
        return cls(
            cheque_number=data.get('cheque_number'),
            bank=data.get('bank'),
            branch=data.get('branch'),
            amount=amount,
            date=data.get('date')
        )

    def to_dict(self):
        return asdict(self)


def strip_data_url(image_b64):
    """Drop a 'data:image/...;base64,' prefix if present"""
    if ',' in image_b64 and image_b64.startswith('data:'):
        return image_b64.split(',', 1)[1]
    return image_b64


def compress_cheque_image(raw_bytes):
    """
    Shrink a cheque photo to fit 1200x800 and re-encode as JPEG.

    Args:
        raw_bytes: Image file contents in any format Pillow reads

    Returns:
        str: Base64 encoded JPEG

    Raises:
        ValueError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(raw_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Invalid image file: {str(e)}")

    if image.mode != 'RGB':
        image = image.convert('RGB')
    image.thumbnail(MAX_IMAGE_SIZE)

    output = io.BytesIO()
    image.save(output, format='JPEG', quality=JPEG_QUALITY)
    return base64.b64encode(output.getvalue()).decode('ascii')


class ChequeExtractionClient:
    """Client for the Gemini cheque reader"""

    def __init__(self, api_key: str = None, model: str = None, endpoint: str = None, timeout: int = 30):
        self.api_key = api_key
        self.model = model
        self.endpoint = endpoint
        self.timeout = timeout

    @classmethod
    def from_config(cls):
        config = current_app.config
        return cls(
            api_key=config.get('GEMINI_API_KEY'),
            model=config.get('GEMINI_MODEL'),
            endpoint=config.get('GEMINI_ENDPOINT')
        )

    @property
    def url(self):
        return f"{self.endpoint}/{self.model}:generateContent"

    def _build_payload(self, image_b64):
        return {
            'contents': [{
                'parts': [
                    {'inline_data': {'mime_type': 'image/jpeg', 'data': strip_data_url(image_b64)}},
                    {'text': EXTRACTION_PROMPT},
                ]
            }],
            'generationConfig': {
                'responseMimeType': 'application/json',
                'responseSchema': RESPONSE_SCHEMA,
            },
        }

    def extract(self, image_b64: str) -> Optional[ChequeData]:
        """
        Ask the model for the cheque fields.

        Returns:
            ChequeData with any unreadable field left as None, or None when
            no key is configured, the request fails, or the reply is not
            the expected JSON
        """
        if not self.api_key:
            logger.error("No Gemini API key configured")
            return None

        try:
            response = requests.post(
                self.url,
                headers={'x-goog-api-key': self.api_key, 'Content-Type': 'application/json'},
                json=self._build_payload(image_b64),
                timeout=self.timeout
            )
            response.raise_for_status()
            text = response.json()['candidates'][0]['content']['parts'][0]['text']
            if not text:
                return None
            data = json.loads(text)
            if not isinstance(data, dict):
                logger.error(f"Unexpected cheque extraction reply: {text}")
                return None
            return ChequeData.from_dict(data)
        except requests.exceptions.RequestException as e:
            logger.error(f"Cheque extraction request failed: {str(e)}")
            return None
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Malformed cheque extraction reply: {str(e)}")
            return None
