"""Infrastructure clients: secrets, storage, cache, outbound gateways, identity providers."""

from clients.vault_client import VaultClient, VaultError
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.signed_gateway import GatewayError, SignedGateway
from clients.email_client import EmailGatewayClient, EmailGatewayError
from clients.sms_client import SmsGatewayClient, SmsGatewayError
from clients.identity_client import (
    FacebookIdentityVerifier,
    GoogleIdentityVerifier,
    IdentityVerificationError,
    VerifiedIdentity,
)
