"""
Tests for author name parsing and author metadata normalization.
"""

import pytest

from manuscript_renderer.authors import parse_name_parts, prepare_author_data


class TestParseNameParts:
    """Tests for parse_name_parts."""

    @pytest.mark.parametrize(
        "full_name, given_names, surname",
        [
            ("John Smith", "John", "Smith"),
            ("John A. Smith", "John A.", "Smith"),
            ("Smith, John A.", "John A.", "Smith"),
            ("  Madonna  ", "", "Madonna"),
            ("", "", ""),
            (None, "", ""),
        ],
    )
    def test_name_forms(self, full_name, given_names, surname):
        parts = parse_name_parts(full_name)

        assert parts.given_names == given_names
        assert parts.surname == surname


class TestPrepareAuthorData:
    """Tests for prepare_author_data."""

    def test_relations_take_precedence(self):
        """authorRelations win over the plain names list and are ordered."""
        metadata = {
            "authors": ["Ignored Person"],
            "authorRelations": [
                {"order": 2, "isCorresponding": False, "user": {"id": 7, "name": "Bob Brown"}},
                {
                    "order": 1,
                    "isCorresponding": True,
                    "user": {
                        "id": "u-1",
                        "name": "Alice Adams",
                        "givenNames": "Alice M.",
                        "surname": "Adams",
                        "orcidId": "0000-0001",
                    },
                },
            ],
        }

        data = prepare_author_data(metadata)

        assert data.authors_string == "Alice Adams, Bob Brown"
        assert data.author_count == 2
        assert data.author_list[0].given_names == "Alice M."
        assert data.author_list[0].orcid == "0000-0001"
        assert data.author_list[1].id == "7"
        assert data.author_list[1].surname == "Brown"
        assert data.author_list[1].is_registered
        assert data.corresponding_author.name == "Alice Adams"

    def test_relation_without_user_name(self):
        data = prepare_author_data({"authorRelations": [{"order": 0, "user": {}}]})

        assert data.authors_string == "Unknown Author"
        assert data.author_list[0].is_registered is False
        assert data.corresponding_author is None

    def test_names_list_first_is_corresponding(self):
        data = prepare_author_data({"authors": [" Jane Doe ", "Smith, John"]})

        assert data.authors_string == "Jane Doe, Smith, John"
        assert [author.order for author in data.author_list] == [0, 1]
        assert data.author_list[1].given_names == "John"
        assert data.corresponding_author.name == "Jane Doe"

    def test_no_authors(self):
        data = prepare_author_data({})

        assert data.authors_string == ""
        assert data.author_list == []
        assert data.author_count == 0
        assert data.corresponding_author is None

    def test_irregular_metadata_never_raises(self):
        """Malformed entries are logged and yield empty results."""
        data = prepare_author_data({"authorRelations": ["not-a-mapping"]})

        assert data.author_list == []
        assert data.corresponding_author is None

    def test_payload_uses_camel_case(self):
        data = prepare_author_data({"authors": ["Jane Doe"]})

        payload = data.author_list[0].to_payload()
        assert payload["givenNames"] == "Jane"
        assert payload["isCorresponding"] is True
