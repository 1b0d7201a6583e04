import sqlite3
from contextlib import closing

import pytest

from data_agent.agents.executor import QueryExecutor
from data_agent.config import AgentSettings
from data_agent.graph import create_data_agent
from data_agent.utils.plan_validator import PlanValidator
from data_agent.utils.schema_registry import SchemaRegistry
from data_agent.utils.state import SchemaEntry
from data_agent.utils.tools import DataTools

from tests.support import CONVERSATION, OTHER_CONVERSATION, ScriptedChatModel

SALES_ROWS = [
    ("EU", 100.0, "widget"),
    ("EU", 50.0, "gadget"),
    ("US", 70.0, "widget"),
    ("APAC", 30.0, "gizmo"),
]


# Table store with one table per conversation
@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "agent.sqlite")
    with closing(sqlite3.connect(path)) as conn:
        conn.execute("CREATE TABLE sales (region TEXT, revenue REAL, product TEXT)")
        conn.executemany("INSERT INTO sales VALUES (?, ?, ?)", SALES_ROWS)
        conn.execute("CREATE TABLE secret (owner TEXT, salary REAL)")
        conn.execute("INSERT INTO secret VALUES ('alice', 1000.0)")
        conn.commit()

    registry = SchemaRegistry(path)
    registry.register(CONVERSATION, "sales", ["region", "revenue", "product"])
    registry.register(OTHER_CONVERSATION, "secret", ["owner", "salary"])
    return path


@pytest.fixture
def sales_schema():
    return [SchemaEntry(table="sales", columns=["region", "revenue", "product"])]


@pytest.fixture
def validator():
    return PlanValidator(default_limit=100)


@pytest.fixture
def executor(db_path):
    return QueryExecutor(db_path)


@pytest.fixture
def data_tools(db_path, validator):
    return DataTools(SchemaRegistry(db_path), validator, QueryExecutor(db_path))


# Build an agent around a scripted model: make_agent([...responses], **settings)
@pytest.fixture
def make_agent(db_path):
    def _make(responses, **overrides):
        model = ScriptedChatModel(responses)
        settings = AgentSettings(db_path=db_path, **overrides)
        return create_data_agent(settings, llm=model), model

    return _make
