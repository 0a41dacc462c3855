"""Unit tests for preservica_client.errors and preservica_client.xmlquery."""

from __future__ import annotations

import pytest

from preservica_client import xmlquery
from preservica_client.errors import ErrorCode, PreservicaClientError


class TestPreservicaClientError:
    def test_from_response_message(self) -> None:
        error = PreservicaClientError.from_response("get", "https://x/y", 500, "Server error")

        assert error.message == "Status code 500 calling https://x/y with method GET Server error"
        assert str(error) == error.message
        assert error.method == "GET"
        assert error.code == ErrorCode.HTTP_ERROR

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_statuses(self, status: int) -> None:
        error = PreservicaClientError.from_response("GET", "https://x", status, "")
        assert error.code == ErrorCode.AUTHORIZATION_FAILED

    def test_explicit_code_wins(self) -> None:
        error = PreservicaClientError.from_response(
            "GET", "https://x", 200, "bad body", code=ErrorCode.DECODE_ERROR
        )
        assert error.code == ErrorCode.DECODE_ERROR

    def test_to_dict(self) -> None:
        error = PreservicaClientError.validation("bad input")
        assert error.to_dict() == {
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "bad input",
                "method": None,
                "url": None,
                "status_code": None,
            }
        }


class TestXmlQuery:
    DOC = (
        b'<r:Root xmlns:r="urn:r" xmlns:x="urn:x">'
        b'<x:Item x:kind="a"> one </x:Item><!-- note --><Item kind="b">two</Item>'
        b"<Group><Item>three</Item></Group></r:Root>"
    )

    def test_local_names_ignore_prefixes(self) -> None:
        root = xmlquery.parse_xml(self.DOC)
        assert xmlquery.texts(root, "Item") == ["one", "two"]
        assert xmlquery.first_text(root, "Group", "Item") == "three"
        assert xmlquery.first_text(root, "Missing") is None

    def test_comments_are_skipped(self) -> None:
        root = xmlquery.parse_xml(self.DOC)
        assert [xmlquery.local_name(c.tag) for c in xmlquery.iter_children(root)] == [
            "Item",
            "Item",
            "Group",
        ]

    def test_attribute_falls_back_to_local_name(self) -> None:
        first, second = xmlquery.children(xmlquery.parse_xml(self.DOC), "Item")
        assert xmlquery.attribute(first, "kind") == "a"
        assert xmlquery.attribute(second, "kind") == "b"
        assert xmlquery.attribute(second, "missing") is None

    def test_case_insensitive_child(self) -> None:
        root = xmlquery.parse_xml(self.DOC)
        assert xmlquery.child(root, "group") is None
        assert xmlquery.child(root, "group", ignore_case=True) is not None

    def test_namespace(self) -> None:
        root = xmlquery.parse_xml(self.DOC)
        assert xmlquery.namespace(root.tag) == "urn:r"
        assert xmlquery.namespace("Plain") is None

    def test_malformed_is_decode_error(self) -> None:
        with pytest.raises(PreservicaClientError) as exc_info:
            xmlquery.parse_xml(b"<unclosed>")
        assert exc_info.value.code == ErrorCode.DECODE_ERROR
