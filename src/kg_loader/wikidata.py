"""Wikidata entity helpers and the label lookup service.

Labels are fetched with the ``wbgetentities`` action of the Wikidata API.
The API accepts at most 50 ids per request, so larger batches are split;
from the caller's side a batch is still a single :meth:`fetch_labels` call.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import requests

from kg_loader.errors import EnrichmentLookupFailure
from kg_loader.sparql.http_utils import create_session

logger = logging.getLogger(__name__)

WIKIDATA_API_URL = "https://www.wikidata.org/w/api.php"
WIKIDATA_ENTITY_PREFIX = "http://www.wikidata.org/entity/"

# Entity IRIs (http/https, /entity/ or /wiki/ form) pointing at an item,
# optionally followed by a path, fragment or query
WIKIDATA_ENTITY_PATTERN = re.compile(
    r"^https?://www\.wikidata\.org/(?:entity|wiki)/Q\d+(?:[/#?].*)?$"
)
_QID_IN_IRI = re.compile(r"/(Q\d+)(?=[/#?]|$)")

MAX_IDS_PER_REQUEST = 50


def extract_qid(iri: Optional[str]) -> Optional[str]:
    """
    Extract the QID from a Wikidata entity IRI.

    Returns None when the IRI holds no ``Q<digits>`` path segment.

    Example:
        >>> extract_qid("http://www.wikidata.org/entity/Q12345")
        'Q12345'
        >>> extract_qid("https://www.wikidata.org/wiki/Q42#sitelinks")
        'Q42'
    """
    if not iri:
        return None
    match = _QID_IN_IRI.search(iri)
    return match.group(1) if match else None


def entity_url(qid: str, prefix: str = WIKIDATA_ENTITY_PREFIX) -> str:
    return f"{prefix}{qid}"


@dataclass
class WikidataLabelService:
    """Resolve Wikidata entity IRIs to display labels.

    Example:
        service = WikidataLabelService()
        labels = service.fetch_labels(["http://www.wikidata.org/entity/Q1"])
        # {"http://www.wikidata.org/entity/Q1": "Universe"}
    """

    language: str = "en"
    timeout: float = 30.0
    max_retries: int = 0
    api_url: str = WIKIDATA_API_URL
    session: Optional[requests.Session] = field(default=None, repr=False)

    def _get_session(self) -> requests.Session:
        if self.session is None:
            self.session = create_session(
                max_retries=self.max_retries,
                user_agent="kg-loader/0.1 WikidataLabelService",
            )
        return self.session

    def fetch_labels(self, iris: Iterable[str]) -> Dict[str, str]:
        """
        Look up labels for a batch of entity IRIs.

        Args:
            iris: Wikidata entity IRIs

        Returns:
            Mapping from IRI to label. IRIs whose entity is missing, has no
            label in the configured language, or sits in a failed request
            chunk are absent.

        Raises:
            EnrichmentLookupFailure: Every request chunk failed
        """
        by_qid: Dict[str, List[str]] = {}
        for iri in iris:
            qid = extract_qid(iri)
            if qid:
                by_qid.setdefault(qid, []).append(iri)
        if not by_qid:
            return {}

        qids = list(by_qid)
        labels: Dict[str, str] = {}
        failure: Optional[EnrichmentLookupFailure] = None
        succeeded = 0
        for start in range(0, len(qids), MAX_IDS_PER_REQUEST):
            chunk = qids[start:start + MAX_IDS_PER_REQUEST]
            try:
                entities = self._get_entities(chunk)
            except EnrichmentLookupFailure as e:
                logger.warning(
                    "Wikidata lookup failed for %d ids (%s..%s): %s",
                    len(chunk), chunk[0], chunk[-1], e,
                )
                failure = e
                continue
            succeeded += 1
            for qid, entity in entities.items():
                entity = entity or {}
                value = (
                    (entity.get("labels") or {})
                    .get(self.language, {})
                    .get("value")
                )
                if not value:
                    logger.debug("No %s label for Wikidata entity %s", self.language, qid)
                    continue
                for iri in by_qid.get(entity.get("id", qid), ()):
                    labels[iri] = value

        if failure is not None and not succeeded:
            raise failure
        return labels

    def _get_entities(self, qids: List[str]) -> Dict[str, dict]:
        params = {
            "action": "wbgetentities",
            "ids": "|".join(qids),
            "props": "labels",
            "languages": self.language,
            "format": "json",
        }
        try:
            response = self._get_session().get(self.api_url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise EnrichmentLookupFailure(f"Wikidata API request failed: {e}") from e

        if not response.ok:
            raise EnrichmentLookupFailure(
                f"Wikidata API error: {response.status_code} {response.reason}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise EnrichmentLookupFailure("Wikidata API returned invalid JSON") from e

        if not isinstance(data, dict):
            raise EnrichmentLookupFailure("Wikidata API returned an unexpected payload")
        if "error" in data:
            error = data["error"]
            info = error.get("info", error) if isinstance(error, dict) else error
            raise EnrichmentLookupFailure(f"Wikidata API error: {info}")
        entities = data.get("entities")
        return entities if isinstance(entities, dict) else {}
