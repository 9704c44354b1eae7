"""
Candidate address handling: domain normalisation, generic role-address
synthesis and case-insensitive pooling
"""
import re
from typing import Iterable, List, Optional, Sequence

from loguru import logger

_SCHEME = re.compile(r'^[a-z][a-z0-9+.-]*://', re.IGNORECASE)
_DOMAIN = re.compile(r'^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)+$')


class EmailGenerator:
    """Prepare candidate addresses and the domains they are looked up from"""

    def __init__(self, generic_prefixes: Optional[Sequence[str]] = None):
        self.generic_prefixes = list(generic_prefixes or [])

    def normalize_domain(self, value: str) -> Optional[str]:
        """
        Reduce a website or domain string to a bare lowercase host

        Args:
            value: e.g. "https://www.Example.com/about" or "example.com"

        Returns:
            "example.com", or None when nothing domain-like remains
        """
        if not value or not isinstance(value, str):
            return None

        host = _SCHEME.sub('', value.strip())
        host = re.split(r'[/?#]', host, maxsplit=1)[0]
        host = host.rsplit('@', 1)[-1]  # drop credentials / mailbox part
        host = host.split(':', 1)[0].strip().strip('.').lower()

        if host.startswith('www.'):
            host = host[4:]

        if not _DOMAIN.match(host):
            logger.debug(f"Discarding non-domain value: {value!r}")
            return None
        return host

    def unique_domains(self, values: Iterable[str]) -> List[str]:
        """Normalise and deduplicate domains, keeping first-seen order"""
        seen = set()
        domains = []
        for value in values:
            domain = self.normalize_domain(value)
            if domain and domain not in seen:
                seen.add(domain)
                domains.append(domain)
        return domains

    def generate_generic_addresses(self, domains: Sequence[str], prefixes: Optional[Sequence[str]] = None) -> List[str]:
        """
        Build role-based addresses (contact@, info@, ...) for each domain

        Args:
            domains: Normalised domains
            prefixes: Local parts to use; defaults to the generator's prefixes

        Returns:
            Addresses grouped by domain in the order given
        """
        prefixes = self.generic_prefixes if prefixes is None else list(prefixes)
        addresses = [
            f"{prefix.strip().rstrip('@')}@{domain}"
            for domain in domains
            for prefix in prefixes
            if prefix and prefix.strip().rstrip('@')
        ]
        logger.debug(f"Generated {len(addresses)} generic addresses for {len(domains)} domains")
        return addresses

    def pool_candidates(self, candidates: Iterable[object]) -> List[str]:
        """
        Deduplicate candidate addresses case-insensitively

        The first-seen casing of each address is kept and insertion order is
        preserved. Non-strings, blanks and strings without "@" are dropped.
        """
        seen = set()
        pooled = []
        for candidate in candidates:
            if not isinstance(candidate, str):
                continue
            address = candidate.strip()
            if not address or '@' not in address:
                continue
            key = address.lower()
            if key in seen:
                continue
            seen.add(key)
            pooled.append(address)
        return pooled

