"""
Tests for query template lookup.
"""
import pytest
from conftest import write_templates

from trickle.core.templates import TemplateLoader
from trickle.utility.exceptions import TemplateError


def test_load(sql_dir):
    write_templates(sql_dir, "crm.orders")

    query = TemplateLoader(sql_dir).load("crm.orders")

    assert "FROM crm.orders" in query
    assert ":startDate" in query


def test_missing(sql_dir):
    write_templates(sql_dir, "a")
    assert TemplateLoader(sql_dir).missing(["a", "b", "c"]) == ["b", "c"]


def test_load_missing_template(sql_dir):
    with pytest.raises(TemplateError, match="No query template"):
        TemplateLoader(sql_dir).load("nope")


def test_load_empty_template(sql_dir):
    (sql_dir / "blank.sql").write_text("  \n", encoding="utf-8")
    with pytest.raises(TemplateError, match="empty"):
        TemplateLoader(sql_dir).load("blank")
