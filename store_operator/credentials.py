"""
Credential manager — one ``<store>-creds`` Secret per store.

The Secret lives in the Store's own namespace (not the target namespace) and
is owned by the Store, so it survives workload namespace churn and is garbage
collected with the Store. Passwords are generated once; every later pass
returns the stored values unchanged, since the database keeps whatever it was
initialised with.
"""
import base64
import logging
import secrets
from typing import NamedTuple, Optional

from kubernetes import client
from kubernetes.client import ApiException

from store_operator import k8s
from store_operator.constants import (
    CRD_API_VERSION,
    CRD_KIND,
    LABEL_MANAGED_BY,
    LABEL_STORE,
    MANAGED_BY,
    MARIADB_ROOT_PASSWORD_LENGTH,
    MARIADB_USER_PASSWORD_LENGTH,
    SECRET_KEY_MARIADB_ROOT,
    SECRET_KEY_MARIADB_USER,
    SECRET_KEY_WORDPRESS,
    WORDPRESS_PASSWORD_LENGTH,
    secret_name,
)
from store_operator.errors import CredentialError
from store_operator.models import Store

logger = logging.getLogger("store-operator.credentials")


class StoreCredentials(NamedTuple):
    mariadb_root_password: str
    mariadb_user_password: str
    wordpress_password: str

    def to_secret_data(self) -> dict[str, str]:
        return {
            SECRET_KEY_MARIADB_ROOT: _b64(self.mariadb_root_password),
            SECRET_KEY_MARIADB_USER: _b64(self.mariadb_user_password),
            SECRET_KEY_WORDPRESS: _b64(self.wordpress_password),
        }


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def generate_password(length: int) -> str:
    """URL-safe random string of exactly ``length`` characters."""
    return secrets.token_urlsafe(length)[:length]


def generate_credentials() -> StoreCredentials:
    return StoreCredentials(
        mariadb_root_password=generate_password(MARIADB_ROOT_PASSWORD_LENGTH),
        mariadb_user_password=generate_password(MARIADB_USER_PASSWORD_LENGTH),
        wordpress_password=generate_password(WORDPRESS_PASSWORD_LENGTH),
    )


def decode_credentials(secret: client.V1Secret) -> StoreCredentials:
    data = secret.data or {}
    try:
        values = {key: base64.b64decode(data[key]).decode() for key in (
            SECRET_KEY_MARIADB_ROOT, SECRET_KEY_MARIADB_USER, SECRET_KEY_WORDPRESS,
        )}
    except KeyError as e:
        raise CredentialError(f"Secret {secret.metadata.name} is missing key {e}") from e
    except (ValueError, UnicodeDecodeError) as e:
        raise CredentialError(f"Secret {secret.metadata.name} is not decodable: {e}") from e
    return StoreCredentials(
        mariadb_root_password=values[SECRET_KEY_MARIADB_ROOT],
        mariadb_user_password=values[SECRET_KEY_MARIADB_USER],
        wordpress_password=values[SECRET_KEY_WORDPRESS],
    )


def owner_reference(store: Store) -> client.V1OwnerReference:
    return client.V1OwnerReference(
        api_version=CRD_API_VERSION,
        kind=CRD_KIND,
        name=store.name,
        uid=store.uid,
        controller=True,
        block_owner_deletion=True,
    )


class CredentialManager:
    def __init__(self, core_v1: Optional[client.CoreV1Api] = None):
        self.core_v1 = core_v1 or k8s.core_api()

    def reconcile(self, store: Store) -> StoreCredentials:
        """Return the store's credentials, creating the Secret on first call."""
        name = secret_name(store.name)
        existing = k8s.read_or_none(self.core_v1.read_namespaced_secret, name, store.namespace)
        if existing is not None:
            return decode_credentials(existing)

        creds = generate_credentials()
        body = client.V1Secret(
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=store.namespace,
                labels={LABEL_MANAGED_BY: MANAGED_BY, LABEL_STORE: store.name},
                owner_references=[owner_reference(store)],
            ),
            type="Opaque",
            data=creds.to_secret_data(),
        )
        try:
            self.core_v1.create_namespaced_secret(store.namespace, body)
        except ApiException as e:
            if e.status != 409:
                raise
            # Someone else created it first; theirs is authoritative.
            logger.info(f"[{store.name}] Secret {name} appeared concurrently — reusing it")
            return decode_credentials(self.core_v1.read_namespaced_secret(name, store.namespace))
        logger.info(f"[{store.name}] Secret {store.namespace}/{name} created")
        return creds
