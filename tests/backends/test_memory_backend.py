import pytest

from unitorm.backends import (
    BackendConfigurationError,
    BackendTransactionError,
    ConstraintViolation,
    MemoryBackend,
    MemoryStore,
    NotFoundError,
)
from unitorm.core import IntegerField, ManyToOne, Model, StringField
from unitorm.query import Q, Query


class Author(Model):
    handle = StringField(nullable=False, unique=True)


class Article(Model):
    title = StringField(nullable=False)
    views = IntegerField(default=0)
    author = ManyToOne(Author)


class Draft(Model):
    body = StringField()

    class Meta:
        id_strategy = "identity"


@pytest.fixture
def store():
    store = MemoryStore("memory-backend")
    store.create_tables([Author, Article, Draft])
    return store


def seed(store):
    backend = MemoryBackend(store)
    backend.begin_tx()
    backend.execute_insert(Author, {"id": 1, "handle": "ada"})
    backend.execute_insert(Article, {"id": 1, "title": "Engines", "views": 10, "author_id": 1})
    backend.execute_insert(Article, {"id": 2, "title": "Notes", "views": 3, "author_id": 1})
    backend.execute_insert(Article, {"id": 3, "title": "Loops", "views": 7, "author_id": None})
    backend.commit_tx()


def test_writes_are_invisible_to_other_connections_until_commit(store):
    writer, reader = MemoryBackend(store), MemoryBackend(store)
    writer.begin_tx()
    writer.execute_insert(Author, {"id": 1, "handle": "ada"})

    assert writer.execute_query(Query(Author)) == [{"id": 1, "handle": "ada"}]
    assert reader.execute_query(Query(Author)) == []

    writer.commit_tx()
    assert reader.execute_query(Query(Author)) == [{"id": 1, "handle": "ada"}]


def test_rollback_discards_journal(store):
    backend = MemoryBackend(store)
    backend.begin_tx()
    backend.execute_insert(Author, {"id": 1, "handle": "ada"})
    backend.rollback_tx()
    assert store.row_count("author") == 0


def test_writes_require_a_transaction(store):
    backend = MemoryBackend(store)
    with pytest.raises(BackendTransactionError):
        backend.execute_insert(Author, {"id": 1, "handle": "ada"})
    with pytest.raises(BackendTransactionError):
        backend.commit_tx()
    backend.begin_tx()
    with pytest.raises(BackendTransactionError):
        backend.begin_tx()


def test_constraint_checks(store):
    seed(store)
    backend = MemoryBackend(store)
    backend.begin_tx()

    with pytest.raises(ConstraintViolation) as duplicate:
        backend.execute_insert(Author, {"id": 1, "handle": "grace"})
    assert duplicate.value.constraint == "primary key"

    with pytest.raises(ConstraintViolation) as unique:
        backend.execute_insert(Author, {"id": 2, "handle": "ada"})
    assert unique.value.constraint == "unique"

    with pytest.raises(ConstraintViolation) as not_null:
        backend.execute_insert(Article, {"id": 9, "title": None})
    assert not_null.value.constraint == "not null"

    with pytest.raises(ConstraintViolation) as foreign_key:
        backend.execute_insert(Article, {"id": 9, "title": "Orphan", "author_id": 42})
    assert foreign_key.value.constraint == "foreign key"

    with pytest.raises(ConstraintViolation) as restrict:
        backend.execute_delete(Author, 1)
    assert restrict.value.table == "article"


def test_update_and_delete_missing_rows_raise_not_found(store):
    backend = MemoryBackend(store)
    backend.begin_tx()
    with pytest.raises(NotFoundError):
        backend.execute_update(Author, 5, {"handle": "x"})
    with pytest.raises(NotFoundError):
        backend.execute_delete(Author, 5)


def test_identity_strategy_generates_identity_on_insert(store):
    backend = MemoryBackend(store)
    backend.begin_tx()
    first = backend.execute_insert(Draft, {"id": None, "body": "a"})
    second = backend.execute_insert(Draft, {"id": None, "body": "b"})
    assert second == first + 1


def test_sequence_strategy_requires_identity(store):
    backend = MemoryBackend(store)
    backend.begin_tx()
    with pytest.raises(ConstraintViolation):
        backend.execute_insert(Author, {"id": None, "handle": "ada"})
    assert backend.generate_identity(Author) == 1
    assert backend.generate_identity(Author) == 2


def test_query_filters_orders_and_windows(store):
    seed(store)
    backend = MemoryBackend(store)

    rows = backend.execute_query(Query(Article).filter(views__gte=5).order_by("-views"))
    assert [row["title"] for row in rows] == ["Engines", "Loops"]

    rows = backend.execute_query(Query(Article).where(Q(title__contains="o") | Q(author=None)).order_by("id"))
    assert [row["id"] for row in rows] == [2, 3]

    rows = backend.execute_query(Query(Article).exclude(author=1))
    assert [row["title"] for row in rows] == ["Loops"]

    rows = backend.execute_query(Query(Article).order_by("id").offset(1).limit(1))
    assert [row["id"] for row in rows] == [2]

    rows = backend.execute_query(Query(Article).filter(id__in=[1, 3], title__iexact="loops"))
    assert [row["id"] for row in rows] == [3]


def test_unknown_table_is_a_configuration_error():
    backend = MemoryBackend(MemoryStore("empty"))
    with pytest.raises(BackendConfigurationError):
        backend.execute_query(Query(Author))
