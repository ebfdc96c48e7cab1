# funds/services/payment_config.py
"""
Payment methods available to the current cooperative.

Gateways are configured per tenant through PaymentGateway rows. The manual
gateway carries the bank accounts members transfer to, plus the fields a
manual payment has to collect.
"""
import logging

from funds.models import PaymentGateway

logger = logging.getLogger(__name__)

GATEWAY_INFO = {
    'paystack': {
        'name': 'Paystack',
        'description': 'Pay with card, bank or USSD via Paystack',
        'icon': 'credit-card',
    },
    'remita': {
        'name': 'Remita',
        'description': 'Pay via Remita RRR',
        'icon': 'building-columns',
    },
    'stripe': {
        'name': 'Stripe',
        'description': 'Pay with international cards via Stripe',
        'icon': 'credit-card',
    },
    'manual': {
        'name': 'Bank Transfer',
        'description': 'Transfer to the cooperative account and upload evidence',
        'icon': 'landmark',
    },
}

WALLET_INFO = {
    'id': 'wallet',
    'name': 'Wallet',
    'description': 'Pay from your wallet balance',
    'icon': 'wallet',
    'enabled': True,
}

CARD_GATEWAYS = ('paystack', 'stripe', 'remita')

MANUAL_DEFAULTS = {
    'require_payer_name': True,
    'require_payer_phone': False,
    'require_transaction_reference': True,
    'require_payment_evidence': True,
    'bank_accounts': [],
}


class ManualPaymentError(Exception):
    """Manual payment configuration or submission problem (HTTP 422)"""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors or {}


class TenantPaymentService:
    """Resolve gateways and payment methods for the current tenant"""

    def get_enabled_gateways(self):
        return list(PaymentGateway.objects.filter(is_enabled=True))

    def get_gateway(self, gateway_type):
        return PaymentGateway.objects.filter(gateway_type=gateway_type, is_enabled=True).first()

    def get_card_gateway(self, preferred=None):
        """First enabled card gateway, or the preferred one when enabled"""
        if preferred:
            if preferred not in CARD_GATEWAYS:
                return None
            return self.get_gateway(preferred)
        enabled = {g.gateway_type: g for g in self.get_enabled_gateways()}
        for gateway_type in CARD_GATEWAYS:
            if gateway_type in enabled:
                return enabled[gateway_type]
        return None

    def get_available_payment_methods(self, payment_type):
        methods = []
        for gateway in self.get_enabled_gateways():
            info = GATEWAY_INFO.get(gateway.gateway_type)
            if info is None:
                continue
            method = {'id': gateway.gateway_type, 'enabled': True, **info}
            if gateway.gateway_type == 'manual':
                method['configuration'] = self.get_manual_config(gateway)
            methods.append(method)

        if payment_type != 'wallet_funding':
            methods.append(dict(WALLET_INFO))

        return methods

    def get_loan_repayment_methods(self):
        """Available methods collapsed onto wallet / card / bank_transfer"""
        methods = []
        seen = set()
        for method in self.get_available_payment_methods('loan_repayment'):
            if method['id'] in CARD_GATEWAYS:
                method_id = 'card'
            elif method['id'] == 'manual':
                method_id = 'bank_transfer'
            else:
                method_id = method['id']

            if method_id in seen:
                continue
            seen.add(method_id)

            entry = {
                'id': method_id,
                'name': {'card': 'Card Payment', 'bank_transfer': 'Bank Transfer'}.get(method_id, method['name']),
                'description': method['description'],
                'icon': method['icon'],
                'enabled': True,
            }
            if method_id == 'card':
                entry['gateway'] = method['id']
            if 'configuration' in method:
                entry['configuration'] = method['configuration']
            methods.append(entry)
        return methods

    def get_manual_config(self, gateway=None):
        gateway = gateway or self.get_gateway('manual')
        config = dict(MANUAL_DEFAULTS)
        if gateway is not None:
            config.update(gateway.configuration or {})
        config['bank_accounts'] = normalize_bank_accounts(config)
        return config


def normalize_bank_accounts(config):
    """Bank accounts in a uniform shape, including single-account legacy config"""
    accounts = config.get('bank_accounts') or []

    if not accounts and config.get('account_number'):
        accounts = [{
            'bank_name': config.get('bank_name', ''),
            'account_name': config.get('account_name', ''),
            'account_number': config.get('account_number', ''),
            'instructions': config.get('instructions', ''),
            'is_primary': True,
        }]

    normalized = []
    for index, account in enumerate(accounts):
        normalized.append({
            'id': str(account.get('id') or f'account_{index + 1}'),
            'bank_name': account.get('bank_name', ''),
            'account_name': account.get('account_name', ''),
            'account_number': str(account.get('account_number', '')),
            'instructions': account.get('instructions', ''),
            'is_primary': bool(account.get('is_primary', False)),
        })
    return normalized


def resolve_bank_account(accounts, bank_account_id=None):
    """Pick the account a manual payment is made to"""
    if not accounts:
        raise ManualPaymentError('Manual bank accounts are not configured. Please contact support or choose another payment method.')

    if bank_account_id:
        for account in accounts:
            if account['id'] == str(bank_account_id):
                return account
        raise ManualPaymentError('The selected bank account is not valid for manual payments.')

    if len(accounts) > 1:
        raise ManualPaymentError('Select the cooperative bank account you paid into.')

    primary = [account for account in accounts if account['is_primary']]
    return primary[0] if primary else accounts[0]


def validate_manual_submission(config, data):
    """Check the payer fields the cooperative requires"""
    errors = {}
    if config.get('require_payer_name') and not data.get('payer_name'):
        errors['payer_name'] = 'Payer name is required'
    if config.get('require_payer_phone') and not data.get('payer_phone'):
        errors['payer_phone'] = 'Payer phone is required'
    if config.get('require_transaction_reference') and not data.get('transaction_reference'):
        errors['transaction_reference'] = 'Transaction reference is required'
    if config.get('require_payment_evidence', True) and not data.get('payment_evidence'):
        errors['payment_evidence'] = 'Upload at least one proof of payment to continue.'

    if errors:
        raise ManualPaymentError('; '.join(errors.values()), errors=errors)


tenant_payment_service = TenantPaymentService()
