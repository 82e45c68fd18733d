"""
LDAP Directory Client
=====================

Live, read-only access to Active Directory via LDAP.

Mapping to the directory model:
- group objects -> Group
- computer objects -> Device (registered owner taken from managedBy)
- msDS-ManagedServiceAccount / msDS-GroupManagedServiceAccount -> ServicePrincipal
- user / person objects -> User
- anything else (contacts, foreign security principals) -> UNKNOWN

Design Decisions:
-----------------
1. Uses ldap3 library for cross-platform LDAP support
2. Object ids are string SIDs; objects without a SID fall back to their DN
3. Large member attributes are exhausted by ldap3 range retrieval (auto_range)
4. An existing ldap3 Connection can be injected, e.g. a MOCK_SYNC one

Security Consideration:
This module performs read-only operations. No modifications are made to the AD.
"""

import struct
from typing import Callable, Optional

from ldap3 import Server, Connection, ALL, SUBTREE, BASE, NTLM, SIMPLE
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_SUCCESS, RESULT_NO_SUCH_OBJECT
from ldap3.utils.conv import escape_filter_chars

from ..config import LDAPConfig
from ..errors import ConfigurationError, DirectoryConnectionError, ObjectNotFoundError
from ..model.schemas import (
    User, Device, ServicePrincipal, Group, MemberRef, ObjectKind
)
from .client import DirectoryServiceClient


OBJECT_ATTRIBUTES = [
    'objectSid', 'objectClass', 'sAMAccountName', 'cn', 'displayName',
    'userPrincipalName', 'dNSHostName', 'managedBy',
]

MANAGED_SERVICE_ACCOUNT_CLASSES = {
    'msds-managedserviceaccount',
    'msds-groupmanagedserviceaccount',
}


def convert_sid(sid_bytes: bytes) -> str:
    """Convert binary SID to string format.

    Args:
        sid_bytes: Binary SID data

    Returns:
        String SID (e.g., "S-1-5-21-..."), or "" for malformed input
    """
    if not sid_bytes or len(sid_bytes) < 8:
        return ""

    # Byte 0: revision, byte 1: sub-authority count,
    # bytes 2-7: identifier authority (big-endian),
    # then 32-bit little-endian sub-authorities
    revision = sid_bytes[0]
    sub_auth_count = sid_bytes[1]
    if len(sid_bytes) < 8 + 4 * sub_auth_count:
        return ""

    id_auth = int.from_bytes(sid_bytes[2:8], 'big')

    sid = f"S-{revision}-{id_auth}"
    for i in range(sub_auth_count):
        offset = 8 + (i * 4)
        sid += f"-{struct.unpack('<I', sid_bytes[offset:offset + 4])[0]}"
    return sid


def kind_from_object_classes(object_classes) -> ObjectKind:
    """Classify an entry by its objectClass values.

    Order matters: managed service accounts and computers also carry the
    user class.
    """
    classes = {str(c).lower() for c in object_classes or []}

    if classes & MANAGED_SERVICE_ACCOUNT_CLASSES:
        return ObjectKind.SERVICE_PRINCIPAL
    if 'computer' in classes:
        return ObjectKind.DEVICE
    if 'group' in classes:
        return ObjectKind.GROUP
    if 'contact' in classes or 'foreignsecurityprincipal' in classes:
        return ObjectKind.UNKNOWN
    if 'user' in classes or 'person' in classes:
        return ObjectKind.USER
    return ObjectKind.UNKNOWN


def _single(attrs: dict, name: str, default: str = "") -> str:
    values = attrs.get(name) or []
    if isinstance(values, (list, tuple)):
        return str(values[0]) if values else default
    return str(values)


def _cn_from_dn(dn: str) -> str:
    if dn.upper().startswith('CN='):
        return dn[3:].split(',')[0]
    return dn


class LDAPDirectoryClient(DirectoryServiceClient):
    """Directory client for Active Directory over LDAP.

    Usage:
        client = LDAPDirectoryClient(LDAPConfig(
            server="192.168.1.100",
            domain="corp.local",
            username="user",
            password="password"
        ))
        group = client.get_group_by_name("Tier0 Admins")
        members = client.get_group_members(group.object_id)
    """

    def __init__(
        self,
        config: LDAPConfig,
        connection: Optional[Connection] = None,
        base_dn: Optional[str] = None,
        verbose: bool = False,
        progress_callback: Optional[Callable[[str], None]] = None
    ):
        """Initialize the LDAP client.

        Args:
            config: LDAPConfig with server, domain and credentials
            connection: Already bound ldap3 Connection to use instead of connecting
            base_dn: Search base (derived from config.domain if omitted)
            verbose: Whether to print progress messages
            progress_callback: Optional callback for progress updates
        """
        self.config = config
        self.connection = connection
        self.verbose = verbose
        self.progress_callback = progress_callback

        if base_dn is None:
            if not config.domain:
                raise ConfigurationError("LDAP client needs a domain or an explicit base_dn")
            base_dn = ",".join([f"DC={part}" for part in config.domain.split(".")])
        self.base_dn = base_dn

        # Filled as entries are read
        self._dn_by_id: dict[str, str] = {}
        self._ref_by_dn: dict[str, MemberRef] = {}  # lowercased DN -> typed reference

    def _log(self, message: str) -> None:
        """Log a message to console and/or callback."""
        if self.verbose:
            print(message)
        if self.progress_callback:
            self.progress_callback(message)

    def connect(self) -> None:
        """Establish connection to the LDAP server.

        Raises:
            DirectoryConnectionError: If the server is unreachable or every bind fails
        """
        if not self.config.server:
            raise ConfigurationError("LDAP server is not configured")

        server = Server(
            self.config.server,
            port=self.config.port,
            use_ssl=self.config.use_ssl,
            get_info=ALL,
            connect_timeout=self.config.timeout
        )

        try:
            if self.config.has_credentials:
                self.connection = self._bind_with_credentials(server)
            else:
                self._log(f"[*] Connecting anonymously to {self.config.server}:{self.config.port}")
                self.connection = Connection(
                    server,
                    auto_bind=True,
                    receive_timeout=self.config.timeout
                )
        except LDAPException as e:
            raise DirectoryConnectionError(f"Connection to {self.config.server} failed: {e}") from e

        self._log(f"[+] Connected successfully to {self.config.server}")

    def _bind_with_credentials(self, server: Server) -> Connection:
        username = self.config.username
        if '\\' not in username and '@' not in username and self.config.domain:
            ntlm_user = f"{self.config.domain.split('.')[0].upper()}\\{username}"
        else:
            ntlm_user = username

        # Pass-the-Hash uses the hash as the NTLM password
        credential = self.config.ntlm_hash or self.config.password
        auth_type_str = "Pass-the-Hash" if self.config.ntlm_hash else "Password"
        self._log(f"[*] Connecting to {self.config.server}:{self.config.port} as {ntlm_user} ({auth_type_str})")

        try:
            return Connection(
                server,
                user=ntlm_user,
                password=credential,
                authentication=NTLM,
                auto_bind=True,
                receive_timeout=self.config.timeout
            )
        except LDAPException:
            if self.config.ntlm_hash:
                raise
            self._log("[*] NTLM auth failed, trying simple bind...")

        if '@' not in username and self.config.domain:
            username = f"{username}@{self.config.domain}"
        return Connection(
            server,
            user=username,
            password=self.config.password,
            authentication=SIMPLE,
            auto_bind=True,
            receive_timeout=self.config.timeout
        )

    def close(self) -> None:
        """Close the LDAP connection."""
        if self.connection is not None:
            try:
                self.connection.unbind()
            except LDAPException as e:
                self._log(f"[!] Error during unbind: {e}")
            self.connection = None

    # ------------------------------------------------------------------
    # Low-level search helpers
    # ------------------------------------------------------------------

    def _search(self, search_base: str, search_filter: str, search_scope) -> list:
        """Run a search and return [(dn, attrs)] pairs."""
        if self.connection is None:
            self.connect()

        try:
            self.connection.search(
                search_base=search_base,
                search_filter=search_filter,
                search_scope=search_scope,
                attributes=OBJECT_ATTRIBUTES + ['member']
            )
        except LDAPException as e:
            raise DirectoryConnectionError(f"LDAP search failed: {e}") from e

        outcome = self.connection.result or {}
        code = outcome.get('result', RESULT_SUCCESS)
        if code not in (RESULT_SUCCESS, RESULT_NO_SUCH_OBJECT):
            raise DirectoryConnectionError(
                f"LDAP search under {search_base} failed: {outcome.get('description')} ({code})"
            )

        results = []
        for entry in self.connection.entries:
            dn = str(entry.entry_dn)
            attrs = entry.entry_attributes_as_dict
            self._remember(dn, attrs)
            results.append((dn, attrs))
        return results

    def _entry_id(self, dn: str, attrs: dict) -> str:
        sid_list = attrs.get('objectSid') or []
        if sid_list:
            sid_value = sid_list[0]
            if isinstance(sid_value, bytes):
                sid = convert_sid(sid_value)
                if sid:
                    return sid
            elif isinstance(sid_value, str) and sid_value.startswith('S-'):
                return sid_value
        return dn

    def _remember(self, dn: str, attrs: dict) -> None:
        object_id = self._entry_id(dn, attrs)
        self._dn_by_id[object_id] = dn
        self._ref_by_dn[dn.lower()] = MemberRef(
            object_id=object_id,
            kind=kind_from_object_classes(attrs.get('objectClass'))
        )

    def _find(self, object_id: str, kind: ObjectKind) -> tuple:
        """Locate an entry by id and check its kind.

        Raises:
            ObjectNotFoundError: If no entry of that kind exists
        """
        dn = self._dn_by_id.get(object_id)
        if dn is not None:
            results = self._search(dn, "(objectClass=*)", BASE)
        elif object_id.startswith('S-'):
            results = self._search(
                self.base_dn,
                f"(objectSid={escape_filter_chars(object_id)})",
                SUBTREE
            )
        else:
            results = self._search(object_id, "(objectClass=*)", BASE)

        for entry_dn, attrs in results:
            if kind_from_object_classes(attrs.get('objectClass')) == kind:
                return entry_dn, attrs

        raise ObjectNotFoundError(object_id, kind=kind.value)

    def _ref_for_dn(self, dn: str) -> MemberRef:
        """Turn a member or owner DN into a typed reference."""
        cached = self._ref_by_dn.get(dn.lower())
        if cached is not None:
            return cached

        results = self._search(dn, "(objectClass=*)", BASE)
        if not results:
            self._log(f"[!] Reference does not resolve: {dn}")
            return MemberRef(object_id=dn, kind=ObjectKind.UNKNOWN)
        entry_dn, _ = results[0]
        return self._ref_by_dn[entry_dn.lower()]

    def _display_name(self, dn: str, attrs: dict) -> str:
        return (
            _single(attrs, 'displayName')
            or _single(attrs, 'cn')
            or _single(attrs, 'sAMAccountName').rstrip('$')
            or _cn_from_dn(dn)
        )

    # ------------------------------------------------------------------
    # DirectoryServiceClient
    # ------------------------------------------------------------------

    def get_group_by_name(self, name: str) -> Optional[Group]:
        escaped = escape_filter_chars(name)
        results = self._search(
            self.base_dn,
            f"(&(objectClass=group)(|(sAMAccountName={escaped})(cn={escaped})(displayName={escaped})))",
            SUBTREE
        )
        if not results:
            return None

        dn, attrs = results[0]
        return self._build_group(dn, attrs)

    def _build_group(self, dn: str, attrs: dict) -> Group:
        return Group(
            object_id=self._entry_id(dn, attrs),
            display_name=self._display_name(dn, attrs),
            properties={'distinguished_name': dn}
        )

    def get_group(self, group_id: str) -> Group:
        dn, attrs = self._find(group_id, ObjectKind.GROUP)
        return self._build_group(dn, attrs)

    def get_group_members(self, group_id: str) -> list[MemberRef]:
        _, attrs = self._find(group_id, ObjectKind.GROUP)
        return [self._ref_for_dn(str(member_dn)) for member_dn in attrs.get('member') or []]

    def get_user(self, user_id: str) -> User:
        dn, attrs = self._find(user_id, ObjectKind.USER)
        return User(
            object_id=self._entry_id(dn, attrs),
            display_name=self._display_name(dn, attrs),
            user_principal_name=_single(attrs, 'userPrincipalName'),
            properties={'distinguished_name': dn}
        )

    def get_device(self, device_id: str) -> Device:
        dn, attrs = self._find(device_id, ObjectKind.DEVICE)
        return Device(
            object_id=self._entry_id(dn, attrs),
            display_name=self._display_name(dn, attrs),
            properties={
                'distinguished_name': dn,
                'dns_host_name': _single(attrs, 'dNSHostName'),
            }
        )

    def get_service_principal(self, sp_id: str) -> ServicePrincipal:
        dn, attrs = self._find(sp_id, ObjectKind.SERVICE_PRINCIPAL)
        return ServicePrincipal(
            object_id=self._entry_id(dn, attrs),
            display_name=self._display_name(dn, attrs),
            properties={'distinguished_name': dn}
        )

    def get_device_registered_owners(self, device_id: str) -> list[MemberRef]:
        _, attrs = self._find(device_id, ObjectKind.DEVICE)
        return [self._ref_for_dn(str(owner_dn)) for owner_dn in attrs.get('managedBy') or []]
