# funds/services/gateways.py
import hashlib
import hmac
import json
import logging
import time
from decimal import Decimal

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """A payment gateway rejected a request or could not be reached"""


STRIPE_SIGNATURE_TOLERANCE = 300


def to_minor_units(amount):
    return int((Decimal(amount) * 100).quantize(Decimal('1')))


class BaseGatewayClient:
    """Shared HTTP handling for gateway clients"""
    name = ''
    base_url = ''

    def __init__(self, gateway):
        self.gateway = gateway
        self.secret_key = gateway.secret_key or ''
        self.config = gateway.configuration or {}
        self.timeout = settings.PAYMENT_GATEWAY_TIMEOUT

    @property
    def simulate(self):
        return settings.PAYMENT_GATEWAY_SIMULATE or not self.secret_key

    def headers(self):
        return {
            'Authorization': f'Bearer {self.secret_key}',
            'Content-Type': 'application/json',
        }

    def request(self, method, path, **kwargs):
        url = f'{self.base_url}{path}'
        kwargs.setdefault('headers', self.headers())
        try:
            response = requests.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"{self.name} request to {path} failed: {e}")
            raise PaymentGatewayError(f'{self.name} is unavailable, please try again') from e
        return self.parse(response)

    def parse(self, response):
        try:
            return response.json()
        except ValueError as e:
            raise PaymentGatewayError(f'Invalid response from {self.name}') from e

    def callback_url(self, payment):
        return f"{settings.APP_URL}/payments/callback?reference={payment.reference}"

    def simulated_init(self, payment):
        logger.info(f"Simulating {self.name} initialisation for {payment.reference}")
        return {
            'payment_url': f"{settings.APP_URL}/payments/simulate/{payment.reference}",
            'gateway_reference': f"SIM_{payment.reference}",
            'raw': {'simulated': True},
        }

    def initialize(self, payment):
        raise NotImplementedError

    def verify(self, gateway_reference):
        raise NotImplementedError

    def verify_webhook(self, request):
        return True


class PaystackClient(BaseGatewayClient):
    name = 'Paystack'

    @property
    def base_url(self):
        return settings.PAYSTACK_BASE_URL

    def initialize(self, payment):
        if self.simulate:
            return self.simulated_init(payment)

        result = self.request('POST', '/transaction/initialize', json={
            'email': payment.user.email,
            'amount': to_minor_units(payment.amount),
            'currency': payment.currency,
            'reference': payment.reference,
            'callback_url': self.callback_url(payment),
            'metadata': {'purpose': payment.purpose, 'payment_id': payment.id},
        })
        if not result.get('status'):
            raise PaymentGatewayError(result.get('message', 'Paystack initialisation failed'))

        data = result['data']
        return {
            'payment_url': data['authorization_url'],
            'gateway_reference': data.get('reference', payment.reference),
            'raw': data,
        }

    def verify(self, gateway_reference):
        if self.simulate:
            return {'paid': False, 'raw': {'simulated': True}}

        result = self.request('GET', f'/transaction/verify/{gateway_reference}')
        data = result.get('data') or {}
        return {
            'paid': data.get('status') == 'success',
            'amount': Decimal(data['amount']) / 100 if data.get('amount') is not None else None,
            'raw': data,
        }

    def verify_webhook(self, request):
        """Check x-paystack-signature when a secret is configured"""
        secret = self.gateway.webhook_secret or self.secret_key
        if not secret:
            return True
        signature = request.META.get('HTTP_X_PAYSTACK_SIGNATURE', '')
        expected = hmac.new(secret.encode(), request.body, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)


class StripeClient(BaseGatewayClient):
    name = 'Stripe'

    @property
    def base_url(self):
        return settings.STRIPE_BASE_URL

    def headers(self):
        return {'Authorization': f'Bearer {self.secret_key}'}

    def initialize(self, payment):
        if self.simulate:
            return self.simulated_init(payment)

        data = self.request('POST', '/payment_intents', data={
            'amount': to_minor_units(payment.amount),
            'currency': payment.currency.lower(),
            'description': payment.description,
            'receipt_email': payment.user.email,
            'metadata[reference]': payment.reference,
            'metadata[purpose]': payment.purpose,
        })
        return {
            'payment_url': (
                f"{settings.APP_URL}/payments/stripe/{payment.reference}"
                f"?client_secret={data['client_secret']}"
            ),
            'gateway_reference': data['id'],
            'raw': {'id': data['id'], 'status': data.get('status')},
        }

    def verify(self, gateway_reference):
        if self.simulate:
            return {'paid': False, 'raw': {'simulated': True}}

        data = self.request('GET', f'/payment_intents/{gateway_reference}')
        return {
            'paid': data.get('status') == 'succeeded',
            'amount': Decimal(data['amount_received']) / 100 if data.get('amount_received') is not None else None,
            'raw': data,
        }

    @property
    def signs_webhooks(self):
        return bool(self.gateway.webhook_secret)

    def verify_webhook(self, request):
        """
        Check the Stripe-Signature header (t=<timestamp>,v1=<hmac>).

        The signed payload is `<timestamp>.<body>` under the endpoint's signing
        secret; stale timestamps are refused.
        """
        secret = self.gateway.webhook_secret
        if not secret:
            return False

        timestamp = ''
        signatures = []
        for item in request.META.get('HTTP_STRIPE_SIGNATURE', '').split(','):
            key, _, value = item.strip().partition('=')
            if key == 't':
                timestamp = value
            elif key == 'v1':
                signatures.append(value)
        if not timestamp.isdigit() or not signatures:
            return False
        if abs(time.time() - int(timestamp)) > STRIPE_SIGNATURE_TOLERANCE:
            return False

        signed = timestamp.encode() + b'.' + request.body
        expected = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return any(hmac.compare_digest(expected, signature) for signature in signatures)


class RemitaClient(BaseGatewayClient):
    name = 'Remita'

    @property
    def base_url(self):
        return settings.REMITA_BASE_URL

    @property
    def merchant_id(self):
        return self.config.get('merchant_id', '')

    @property
    def service_type_id(self):
        return self.config.get('service_type_id', '')

    def _hash(self, *parts):
        return hashlib.sha512(''.join(str(p) for p in parts).encode()).hexdigest()

    def parse(self, response):
        # Remita answers with a JSONP wrapper: jsonp ({...})
        text = response.text.strip()
        if text.startswith('jsonp'):
            text = text[text.index('(') + 1:text.rindex(')')]
        try:
            return json.loads(text)
        except ValueError as e:
            raise PaymentGatewayError('Invalid response from Remita') from e

    def initialize(self, payment):
        if self.simulate:
            return self.simulated_init(payment)

        amount = str(payment.amount)
        api_hash = self._hash(self.merchant_id, self.service_type_id, payment.reference,
                              amount, self.secret_key)
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'remitaConsumerKey={self.merchant_id},remitaConsumerToken={api_hash}',
        }
        result = self.request('POST', '/echannelsvc/merchant/api/paymentinit', headers=headers, json={
            'serviceTypeId': self.service_type_id,
            'amount': amount,
            'orderId': payment.reference,
            'payerName': payment.user.full_name,
            'payerEmail': payment.user.email,
            'payerPhone': payment.user.phone_number,
            'description': payment.description,
        })
        rrr = result.get('RRR')
        if not rrr:
            raise PaymentGatewayError(result.get('status', 'Remita could not generate an RRR'))

        checkout_url = self.config.get('checkout_url', f'{self.base_url}/ecomm/finalize.reg')
        return {
            'payment_url': f"{checkout_url}?merchantId={self.merchant_id}&rrr={rrr}",
            'gateway_reference': rrr,
            'raw': result,
        }

    def verify(self, gateway_reference):
        if self.simulate:
            return {'paid': False, 'raw': {'simulated': True}}

        api_hash = self._hash(gateway_reference, self.secret_key, self.merchant_id)
        result = self.request(
            'GET',
            f'/echannelsvc/{self.merchant_id}/{gateway_reference}/{api_hash}/status.reg',
            headers={'Content-Type': 'application/json'},
        )
        return {
            'paid': result.get('status') in ('00', '01'),
            'amount': Decimal(str(result['amount'])) if result.get('amount') is not None else None,
            'raw': result,
        }


CLIENTS = {
    'paystack': PaystackClient,
    'stripe': StripeClient,
    'remita': RemitaClient,
}


def get_gateway_client(gateway):
    try:
        return CLIENTS[gateway.gateway_type](gateway)
    except KeyError:
        raise PaymentGatewayError(f'{gateway.gateway_type} is not a card gateway')
