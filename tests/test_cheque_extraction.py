"""
Cheque photo compression and the Gemini extraction client.
"""

import base64
import io
import json
from unittest import mock

import pytest
import requests
from PIL import Image

from distrifin.services.cheque_extraction import (
    ChequeData, ChequeExtractionClient, compress_cheque_image, strip_data_url,
)


def png_bytes(size=(2400, 1000), color=(200, 30, 30, 255)):
    buffer = io.BytesIO()
    Image.new('RGBA', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def gemini_reply(payload):
    response = mock.Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = {'candidates': [{'content': {'parts': [{'text': payload}]}}]}
    return response


@pytest.fixture
def client():
    return ChequeExtractionClient(api_key='key-123', model='gemini-test', endpoint='https://example.test/models')


class TestCompressChequeImage:

    def test_fits_within_bounds_as_jpeg(self):
        encoded = compress_cheque_image(png_bytes())
        image = Image.open(io.BytesIO(base64.b64decode(encoded)))

        assert image.format == 'JPEG'
        assert image.size[0] <= 1200 and image.size[1] <= 800
        assert image.size == (1200, 500)

    def test_small_image_not_enlarged(self):
        image = Image.open(io.BytesIO(base64.b64decode(compress_cheque_image(png_bytes((300, 200))))))
        assert image.size == (300, 200)

    def test_not_an_image(self):
        with pytest.raises(ValueError, match="Invalid image file"):
            compress_cheque_image(b'definitely not a picture')


class TestExtract:

    def test_parses_structured_reply(self, client):
        reply = json.dumps({'cheque_number': '000123', 'bank': 'First Bank', 'branch': None,
                            'amount': 5000, 'date': '2025-03-01'})
        with mock.patch('distrifin.services.cheque_extraction.requests.post',
                        return_value=gemini_reply(reply)) as post:
            data = client.extract('data:image/jpeg;base64,QUJD')

        assert data == ChequeData(cheque_number='000123', bank='First Bank', branch=None,
                                  amount=5000.0, date='2025-03-01')
        url = post.call_args.args[0]
        kwargs = post.call_args.kwargs
        assert url == 'https://example.test/models/gemini-test:generateContent'
        assert kwargs['headers']['x-goog-api-key'] == 'key-123'
        assert kwargs['json']['contents'][0]['parts'][0]['inline_data']['data'] == 'QUJD'
        assert kwargs['json']['generationConfig']['responseSchema']['required'] == ['amount']

    def test_missing_key_returns_none_without_calling(self):
        with mock.patch('distrifin.services.cheque_extraction.requests.post') as post:
            assert ChequeExtractionClient(api_key=None, model='m', endpoint='e').extract('QUJD') is None
        post.assert_not_called()

    def test_http_error_returns_none(self, client):
        with mock.patch('distrifin.services.cheque_extraction.requests.post',
                        side_effect=requests.exceptions.ConnectionError("down")):
            assert client.extract('QUJD') is None

    @pytest.mark.parametrize("payload", ['not json', '[1, 2]', ''])
    def test_malformed_reply_returns_none(self, client, payload):
        with mock.patch('distrifin.services.cheque_extraction.requests.post',
                        return_value=gemini_reply(payload)):
            assert client.extract('QUJD') is None

    def test_unexpected_envelope_returns_none(self, client):
        response = mock.Mock()
        response.raise_for_status.return_value = None
        response.json.return_value = {'promptFeedback': {'blockReason': 'SAFETY'}}
        with mock.patch('distrifin.services.cheque_extraction.requests.post', return_value=response):
            assert client.extract('QUJD') is None


def test_strip_data_url_keeps_plain_base64():
    assert strip_data_url('QUJD') == 'QUJD'
    assert strip_data_url('data:image/png;base64,QUJD') == 'QUJD'
