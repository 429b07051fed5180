import pytest

from unitorm.backends import MemoryBackend, MemoryStore
from unitorm.core import NOT_LOADED, Cascade, IntegerField, ManyToOne, Model, OneToMany, StringField
from unitorm.persistence import (
    FLUSH_COMMIT,
    ContextClosedError,
    ContextSettings,
    DuplicateIdentityError,
    EntityStateError,
    PersistenceContext,
    TransactionError,
    TransactionRequiredError,
)


class Shelf(Model):
    label = StringField(nullable=False)
    books = OneToMany("Book", mapped_by="shelf", cascade=Cascade.PERSIST)


class Book(Model):
    title = StringField(nullable=False)
    pages = IntegerField(default=0)
    shelf = ManyToOne(Shelf)


class Ticket(Model):
    subject = StringField(nullable=False)

    class Meta:
        id_strategy = "identity"


@pytest.fixture
def store():
    store = MemoryStore("lifecycle")
    store.create_tables([Shelf, Book, Ticket])
    return store


def open_context(store, **settings):
    return PersistenceContext(MemoryBackend(store), settings=ContextSettings(**settings))


def seed_shelf(store, titles=("Dune", "Emma")):
    with open_context(store) as context:
        shelf = Shelf(label="fiction")
        context.persist(shelf)
        for title in titles:
            context.persist(Book(title=title, shelf=shelf))
    return shelf.id


def test_flush_requires_an_active_transaction(store):
    context = open_context(store)
    context.persist(Book(title="Dune"))
    with pytest.raises(TransactionRequiredError):
        context.flush()
    context.close()
    assert store.row_count("book") == 0


def test_exception_inside_block_rolls_back_and_closes(store):
    with pytest.raises(RuntimeError):
        with open_context(store) as context:
            context.persist(Book(title="Dune"))
            context.flush()
            raise RuntimeError("boom")

    assert not context.is_open
    assert store.row_count("book") == 0


def test_rollback_discards_pending_writes_and_blocks_commit(store):
    context = open_context(store)
    context.begin()
    context.persist(Book(title="Dune"))
    context.rollback()
    context.rollback()

    with pytest.raises(TransactionError):
        context.commit()
    context.close()
    assert store.row_count("book") == 0


def test_closed_context_rejects_operations(store):
    context = open_context(store)
    context.close()
    context.close()
    with pytest.raises(ContextClosedError):
        context.persist(Book(title="Dune"))
    with pytest.raises(ContextClosedError):
        context.query(Book)


def test_second_instance_with_managed_identity_is_rejected(store):
    with open_context(store) as context:
        context.persist(Book(id=7, title="Dune"))
        with pytest.raises(DuplicateIdentityError):
            context.persist(Book(id=7, title="Emma"))


def test_remove_requires_a_managed_entity(store):
    with open_context(store) as context:
        with pytest.raises(EntityStateError):
            context.remove(Book(title="Dune"))


def test_removing_a_pending_insert_cancels_it(store):
    with open_context(store) as context:
        book = Book(title="Dune")
        context.persist(book)
        context.remove(book)
        assert not context.contains(book)

    assert store.row_count("book") == 0


def test_persisting_a_removed_entity_manages_it_again(store):
    shelf_id = seed_shelf(store)

    with open_context(store) as context:
        shelf = context.find(Shelf, shelf_id)
        book = shelf.books[0]
        context.remove(book)
        assert context.find(Book, book.id) is None
        context.persist(book)
        assert context.find(Book, book.id) is book

    assert store.row_count("book") == 2


def test_sequence_identity_is_visible_at_persist(store):
    with open_context(store) as context:
        book = Book(title="Dune")
        context.persist(book)
        assert book.id is not None
        assert context.find(Book, book.id) is book


def test_identity_strategy_assigns_identity_on_insert(store):
    with open_context(store) as context:
        ticket = Ticket(subject="broken build")
        context.persist(ticket)
        assert ticket.id is None
        context.flush()
        assert ticket.id is not None
        assert context.find(Ticket, ticket.id) is ticket


def test_removed_collection_member_without_orphan_removal_loses_its_reference(store):
    shelf_id = seed_shelf(store)

    with open_context(store) as context:
        shelf = context.find(Shelf, shelf_id)
        book = next(book for book in shelf.books if book.title == "Dune")
        shelf.books.remove(book)

    with open_context(store) as context:
        stored = context.query(Book).filter(title="Dune").first()
        assert stored.shelf is None
        assert [book.title for book in context.find(Shelf, shelf_id).books] == ["Emma"]


def test_update_writes_only_changed_fields(store):
    shelf_id = seed_shelf(store, titles=("Dune",))

    with open_context(store) as context:
        book = context.find(Shelf, shelf_id).books[0]
        book.pages = 412

    with open_context(store) as context:
        stored = context.query(Book).first()
        assert stored.pages == 412
        assert stored.title == "Dune"
        assert stored.shelf.id == shelf_id


def test_detach_stops_tracking_changes(store):
    with open_context(store) as context:
        ticket = Ticket(subject="broken build")
        context.persist(ticket)

    with open_context(store) as context:
        found = context.find(Ticket, ticket.id)
        context.detach(found)
        assert not context.contains(found)
        found.subject = "fixed"
        reloaded = context.find(Ticket, ticket.id)
        assert reloaded is not found
        assert reloaded.subject == "broken build"

    with open_context(store) as context:
        assert context.find(Ticket, ticket.id).subject == "broken build"


def test_clear_detaches_everything(store):
    shelf_id = seed_shelf(store)

    with open_context(store) as context:
        shelf = context.find(Shelf, shelf_id)
        context.clear()
        assert not context.contains(shelf)
        assert context.find(Shelf, shelf_id) is not shelf


def test_load_refreshes_a_collection_from_storage(store):
    shelf_id = seed_shelf(store, titles=("Dune",))

    with open_context(store) as context:
        shelf = context.find(Shelf, shelf_id)
        context.persist(Book(title="Emma", shelf=shelf))
        books = context.load(shelf, "books")
        assert sorted(book.title for book in books) == ["Dune", "Emma"]

    with open_context(store) as context:
        assert len(context.find(Shelf, shelf_id).books) == 2


def test_load_resolves_a_reference_assigned_by_identity(store):
    shelf_id = seed_shelf(store, titles=())

    with open_context(store) as context:
        book = Book(title="Dune")
        book.shelf = shelf_id
        assert book.shelf is NOT_LOADED
        context.persist(book)
        shelf = context.load(book, "shelf")
        assert shelf is context.find(Shelf, shelf_id)


def test_load_requires_a_managed_entity(store):
    with open_context(store) as context:
        with pytest.raises(EntityStateError):
            context.load(Book(title="Dune"), "shelf")


def test_commit_flush_mode_defers_writes_until_commit(store):
    with open_context(store, flush_mode=FLUSH_COMMIT) as context:
        context.persist(Book(title="Dune"))
        assert context.query(Book).all() == []

    with open_context(store) as context:
        assert [book.title for book in context.query(Book)] == ["Dune"]
