from __future__ import annotations
"""Named connection profiles with secrets kept in the OS keychain."""
from dataclasses import dataclass
import json
import logging
from pathlib import Path

import keyring
from keyring.errors import KeyringError

LOGGER = logging.getLogger(__name__)


class ProfileNotFoundError(LookupError):
    """Raised when a named profile does not exist."""


@dataclass
class ConnectionProfile:
    """Endpoint and credentials used to reach an S3-compatible store."""

    name: str
    endpoint_url: str
    access_key: str
    secret_key: str = ""
    region: str = ""


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = "s3magic"):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError:
            LOGGER.warning("Keychain lookup failed for profile '%s'", profile_name)
            return ""

    def set_secret(self, profile_name: str, secret_key: str) -> None:
        if not profile_name:
            return
        if not secret_key:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret_key)
        except KeyringError:
            LOGGER.warning("Unable to store secret for profile '%s' in the keychain", profile_name)

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """JSON file of profiles; secret keys never touch the file."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".s3magic_profiles.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[ConnectionProfile]:
        data = self._read_entries()
        profiles: list[ConnectionProfile] = []
        for entry in data:
            try:
                name = entry["name"]
                profiles.append(
                    ConnectionProfile(
                        name=name,
                        endpoint_url=entry["endpoint_url"],
                        access_key=entry["access_key"],
                        secret_key=self._keychain.get_secret(name),
                        region=entry.get("region", "") or "",
                    )
                )
            except (KeyError, TypeError):
                continue
        return profiles

    def get(self, name: str) -> ConnectionProfile:
        for profile in self.load():
            if profile.name == name:
                return profile
        raise ProfileNotFoundError(f"Profile '{name}' does not exist")

    def upsert(self, profile: ConnectionProfile) -> None:
        profiles = [existing for existing in self.load() if existing.name != profile.name]
        profiles.append(profile)
        self.save(profiles)

    def remove(self, name: str) -> None:
        profiles = self.load()
        remaining = [profile for profile in profiles if profile.name != name]
        if len(remaining) == len(profiles):
            raise ProfileNotFoundError(f"Profile '{name}' does not exist")
        self.save(remaining)

    def save(self, profiles: list[ConnectionProfile]) -> None:
        data = []
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.secret_key)
            data.append(
                {
                    "name": profile.name,
                    "endpoint_url": profile.endpoint_url,
                    "access_key": profile.access_key,
                    "region": profile.region,
                }
            )
        existing_names = {entry.get("name") for entry in self._read_entries() if isinstance(entry, dict)}
        current_names = {profile.name for profile in profiles}
        for name in existing_names - current_names:
            if isinstance(name, str) and name:
                self._keychain.delete_secret(name)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def _read_entries(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []
