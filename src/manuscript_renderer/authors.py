from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .models import AuthorData, AuthorRecord, NameParts

logger = logging.getLogger(__name__)


def parse_name_parts(full_name: Optional[str]) -> NameParts:
    """
    Split a full name into given names and surname.

    Handles "John Smith", "John A. Smith" and "Smith, John A.". A single
    word is treated as a surname.
    """
    if not full_name or not full_name.strip():
        return NameParts(given_names="", surname="")

    trimmed = full_name.strip()

    if "," in trimmed:
        parts = [part.strip() for part in trimmed.split(",")]
        return NameParts(given_names=" ".join(parts[1:]).strip(), surname=parts[0])

    words = trimmed.split()
    if len(words) == 1:
        return NameParts(given_names="", surname=words[0])
    return NameParts(given_names=" ".join(words[:-1]), surname=words[-1])


def _record_from_relation(relation: Mapping[str, Any]) -> AuthorRecord:
    user = relation.get("user") or {}
    full_name = user.get("name") or "Unknown Author"

    given_names = user.get("givenNames") or ""
    surname = user.get("surname") or ""
    if not given_names and not surname:
        given_names, surname = parse_name_parts(full_name)

    return AuthorRecord(
        id=str(user["id"]) if user.get("id") is not None else None,
        name=full_name,
        given_names=given_names,
        surname=surname,
        email=user.get("email"),
        orcid=user.get("orcidId"),
        orcid_id=user.get("orcidId"),
        affiliation=user.get("affiliation"),
        bio=user.get("bio"),
        website=user.get("website"),
        is_corresponding=bool(relation.get("isCorresponding")),
        order=relation.get("order") or 0,
        is_registered=bool(user.get("id")),
    )


def _record_from_name(name: str, index: int) -> AuthorRecord:
    trimmed = name.strip()
    given_names, surname = parse_name_parts(trimmed)
    return AuthorRecord(
        name=trimmed,
        given_names=given_names,
        surname=surname,
        is_corresponding=index == 0,
        order=index,
    )


def prepare_author_data(metadata: Mapping[str, Any]) -> AuthorData:
    """
    Normalize manuscript author metadata into an ordered author list.

    ``authorRelations`` (registered authors with ordering and a corresponding
    flag) take precedence over the plain ``authors`` name list. Irregular
    metadata is logged and yields empty results; this never raises.
    """
    author_list: List[AuthorRecord] = []
    corresponding: Optional[AuthorRecord] = None

    try:
        relations = metadata.get("authorRelations")
        names = metadata.get("authors")

        if isinstance(relations, list):
            ordered = sorted(relations, key=lambda relation: relation.get("order") or 0)
            author_list = [_record_from_relation(relation) for relation in ordered]
            corresponding = next((author for author in author_list if author.is_corresponding), None)
        elif isinstance(names, list):
            author_list = [_record_from_name(name, index) for index, name in enumerate(names)]
            corresponding = author_list[0] if author_list else None
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"Error processing author data: {exc}")
        author_list = []
        corresponding = None

    return AuthorData(
        authors_string=", ".join(author.name for author in author_list),
        author_list=author_list,
        author_count=len(author_list),
        corresponding_author=corresponding,
    )


def author_payloads(authors: List[AuthorRecord]) -> List[Dict[str, Any]]:
    return [author.to_payload() for author in authors]
