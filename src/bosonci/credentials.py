# credentials.py
from __future__ import annotations

import os
from typing import Mapping, Optional

from .model import RegistryCredentials, SecretRef


class SecretNotFoundError(KeyError):
    def __init__(self, ref: SecretRef):
        self.ref = ref
        super().__init__(ref.name)

    def __str__(self) -> str:
        return f"secret '{self.ref.name}' is not set in the environment"


class SecretResolver:
    """
    Resolves SecretRef values at execution time.

    Secrets come from an explicit mapping (tests, hosting platform) or fall
    back to the process environment. Values never end up in job definitions.
    """

    def __init__(self, values: Optional[Mapping[str, str]] = None, *, use_environ: bool = True):
        self._values = dict(values or {})
        self._use_environ = use_environ

    def resolve(self, ref: SecretRef) -> str:
        if ref.name in self._values:
            return self._values[ref.name]
        if self._use_environ and ref.name in os.environ:
            return os.environ[ref.name]
        raise SecretNotFoundError(ref)

    def resolve_credentials(self, creds: RegistryCredentials) -> tuple[str, str]:
        return self.resolve(creds.username), self.resolve(creds.password)
