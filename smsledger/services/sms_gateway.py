import httpx
import json
import logging
from typing import Dict, Any, List

from smsledger.services.rate_limiter import build_rate_limiter
from config import settings

logger = logging.getLogger(__name__)

class TwilioProvider:
    name = "twilio"

    def __init__(self, account_sid: str, auth_token: str, from_number: str, endpoint: str, timeout: float = 30.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def send(self, phone_number: str, message: str) -> str:
        """Send an SMS through the Twilio Messages API; returns the message SID"""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    f"{self.endpoint}/2010-04-01/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data={
                        'To': phone_number,
                        'From': self.from_number,
                        'Body': message
                    },
                    timeout=self.timeout
                )
                response.raise_for_status()

                data = response.json()
                return data['sid']
            except httpx.HTTPError as e:
                raise Exception(f"Twilio API error: {str(e)}")
            except (json.JSONDecodeError, KeyError):
                raise Exception("Invalid response from Twilio API")

class TextbeltProvider:
    name = "textbelt"

    def __init__(self, api_key: str, endpoint: str, timeout: float = 30.0):
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, phone_number: str, message: str) -> str:
        """Send an SMS through Textbelt; returns the text id"""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    self.endpoint,
                    json={
                        'phone': phone_number,
                        'message': message,
                        'key': self.api_key
                    },
                    timeout=self.timeout
                )
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise Exception(f"Textbelt API error: {str(e)}")
            except json.JSONDecodeError:
                raise Exception("Invalid response from Textbelt API")

        if not data.get('success'):
            raise Exception(data.get('error') or 'Textbelt API error')

        return str(data.get('textId', ''))

class SmsGateway:
    """Try each configured provider in order; the first acceptance wins"""

    def __init__(self, providers: List[Any], rate_limiter):
        self.providers = providers
        self.rate_limiter = rate_limiter

    @classmethod
    def from_settings(cls) -> "SmsGateway":
        available = {
            TwilioProvider.name: lambda: TwilioProvider(
                settings.TWILIO_ACCOUNT_SID,
                settings.TWILIO_AUTH_TOKEN,
                settings.TWILIO_FROM_NUMBER,
                settings.TWILIO_API_URL,
                settings.SMS_HTTP_TIMEOUT
            ),
            TextbeltProvider.name: lambda: TextbeltProvider(
                settings.TEXTBELT_API_KEY,
                settings.TEXTBELT_API_URL,
                settings.SMS_HTTP_TIMEOUT
            ),
        }

        providers = []
        for name in settings.sms_provider_order_list:
            if name not in available:
                logger.warning(f"Unknown SMS provider '{name}' in SMS_PROVIDER_ORDER - skipping")
                continue
            providers.append(available[name]())

        rate_limiter = build_rate_limiter(settings.SMS_RATE_LIMIT_SCOPE, settings.SMS_MIN_INTERVAL_MS)
        return cls(providers, rate_limiter)

    def configured_providers(self) -> List[str]:
        return [provider.name for provider in self.providers if provider.is_configured()]

    async def send(self, phone_number: str, message: str) -> Dict[str, Any]:
        await self.rate_limiter.acquire()

        for provider in self.providers:
            if not provider.is_configured():
                continue

            try:
                logger.info(f"Attempting to send SMS via {provider.name}...")
                message_id = await provider.send(phone_number, message)
                return {
                    'success': True,
                    'message_id': message_id,
                    'provider': provider.name
                }
            except Exception as e:
                logger.warning(f"{provider.name} failed: {str(e)}")

        return {
            'success': False,
            'error': 'All SMS providers failed. Please check configuration.'
        }

# Global gateway instance
sms_gateway = SmsGateway.from_settings()
