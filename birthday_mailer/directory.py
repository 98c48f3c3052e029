from typing import Any, Callable, List, Optional

from ldap3 import NONE, SUBTREE, Connection, Server

from birthday_mailer.models import UserRecord
from birthday_mailer.utils.logger import get_logger
from birthday_mailer.utils.secrets import get_secret

logger = get_logger("directory")

# Enabled person accounts with a mail attribute. Bit 2 of
# userAccountControl is ACCOUNTDISABLE.
ENABLED_USERS_WITH_MAIL = (
    "(&(objectCategory=person)(objectClass=user)(mail=*)"
    "(!(userAccountControl:1.2.840.113556.1.4.803:=2)))"
)


def search_base_for_domain(domain: str) -> str:
    """corp.example.com -> DC=corp,DC=example,DC=com"""
    parts = [p for p in domain.strip().split(".") if p]
    return ",".join(f"DC={p}" for p in parts)


def _first(value: Any) -> Optional[str]:
    # Without schema info ldap3 returns every attribute as a list.
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    value = str(value)
    return value or None


class DirectoryClient:
    """Reads enabled user accounts from Active Directory over LDAP."""

    def __init__(
        self,
        server_url: str,
        search_base: str,
        bind_user: Optional[str] = None,
        bind_password: Optional[str] = None,
        attribute: str = "extensionAttribute3",
        page_size: int = 500,
        connection_factory: Optional[Callable[[], Any]] = None,
    ):
        self.server_url = server_url
        self.search_base = search_base
        self.bind_user = bind_user
        self.bind_password = bind_password
        self.attribute = attribute
        self.page_size = page_size
        self._connection_factory = connection_factory or self._connect

    def _connect(self) -> Connection:
        server = Server(self.server_url, get_info=NONE, connect_timeout=10)
        return Connection(
            server,
            user=self.bind_user,
            password=self.bind_password,
            auto_bind=True,
            read_only=True,
            receive_timeout=30,
        )

    def _to_record(self, attributes: dict) -> Optional[UserRecord]:
        account_name = _first(attributes.get("sAMAccountName"))
        if not account_name:
            return None
        return UserRecord(
            account_name=account_name,
            display_name=_first(attributes.get("displayName")),
            email_address=_first(attributes.get("mail")),
            birth_attribute=_first(attributes.get(self.attribute)),
        )

    def get_enabled_users(self) -> List[UserRecord]:
        logger.info("directory.scan_start: server=%s base=%s", self.server_url, self.search_base)

        conn = self._connection_factory()
        users: List[UserRecord] = []
        try:
            entries = conn.extend.standard.paged_search(
                search_base=self.search_base,
                search_filter=ENABLED_USERS_WITH_MAIL,
                search_scope=SUBTREE,
                attributes=["sAMAccountName", "displayName", "mail", self.attribute],
                paged_size=self.page_size,
                generator=True,
            )
            for entry in entries:
                # Referrals carry no attributes.
                if entry.get("type") != "searchResEntry":
                    continue
                record = self._to_record(entry.get("attributes") or {})
                if record is None:
                    logger.debug("directory.entry_skipped: dn=%s", entry.get("dn"))
                    continue
                users.append(record)
        finally:
            conn.unbind()

        logger.info("directory.scan_finished: users=%d", len(users))
        return users


def build_directory(settings) -> DirectoryClient:
    """
    Build a DirectoryClient from job settings. Bind credentials come from
    the environment or, when DIRECTORY_SECRET_NAME is set, from Secrets Manager.
    """
    bind_user = settings.directory_bind_user
    bind_password = settings.directory_bind_password

    if settings.directory_secret_name:
        secret = get_secret(settings.directory_secret_name)
        bind_user = secret.get("bind_user") or bind_user
        bind_password = secret.get("bind_password") or bind_password

    return DirectoryClient(
        server_url=settings.directory_server,
        search_base=settings.directory_search_base,
        bind_user=bind_user,
        bind_password=bind_password,
        attribute=settings.birthday_attribute,
    )
