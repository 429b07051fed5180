import pytest

from unitorm.backends import ConstraintViolation, MemoryBackend, MemoryStore
from unitorm.core import IntegerField, Model, StringField
from unitorm.hooks import hooks
from unitorm.persistence import ContextSettings, PersistenceContext


@pytest.fixture(autouse=True)
def clear_hooks():
    hooks.clear()
    yield
    hooks.clear()


class Sample(Model):
    name = StringField(nullable=False, unique=True)
    age = IntegerField(default=0)


class Other(Model):
    name = StringField()


@pytest.fixture
def store():
    store = MemoryStore("hooks")
    store.create_tables([Sample, Other])
    return store


def open_context(store):
    return PersistenceContext(MemoryBackend(store), settings=ContextSettings())


def test_hooks_fire_in_order(store):
    events = []

    for event_name in ["before_save", "after_save", "after_commit"]:

        def handler(inst, event=event_name, **ctx):
            events.append((event, inst.name if inst else None, ctx.get("created")))

        hooks.register(event_name, handler)

    with open_context(store) as context:
        sample = Sample(name="Alice", age=21)
        context.persist(sample)

    with open_context(store) as context:
        found = context.find(Sample, sample.id)
        found.age = 22

    assert events == [
        ("before_save", "Alice", True),
        ("after_save", "Alice", True),
        ("after_commit", None, None),
        ("before_save", "Alice", False),
        ("after_save", "Alice", False),
        ("after_commit", None, None),
    ]


def test_delete_hooks_receive_the_entity(store):
    deleted = []
    hooks.register("before_delete", lambda inst, **ctx: deleted.append(("before", inst.name)))
    hooks.register("after_delete", lambda inst, **ctx: deleted.append(("after", inst.name)))

    with open_context(store) as context:
        sample = Sample(name="Bob")
        context.persist(sample)

    with open_context(store) as context:
        context.remove(context.find(Sample, sample.id))

    assert deleted == [("before", "Bob"), ("after", "Bob")]


def test_model_specific_hooks_only_fire_for_that_model(store):
    seen = []
    Sample.register_hook("after_save", lambda inst, **ctx: seen.append(inst.name))

    with open_context(store) as context:
        context.persist(Sample(name="Carol"))
        context.persist(Other(name="ignored"))

    assert seen == ["Carol"]


def test_after_rollback_reports_failed_commits(store):
    outcomes = []
    hooks.register("after_rollback", lambda inst, **ctx: outcomes.append(ctx["failed"]))

    with pytest.raises(RuntimeError):
        with open_context(store) as context:
            context.persist(Sample(name="Dan"))
            raise RuntimeError("abort")

    with pytest.raises(ConstraintViolation):
        with open_context(store) as context:
            context.persist(Sample(name="Eve"))
            context.persist(Sample(name="Eve"))

    assert outcomes == [False, True]


def test_unknown_event_is_rejected():
    with pytest.raises(ValueError):
        hooks.register("before_validate", lambda inst, **ctx: None)


def test_unregistered_handler_no_longer_fires(store):
    seen = []

    def handler(inst, **ctx):
        seen.append(inst.name)

    hooks.register("after_save", handler, model=Sample)
    assert hooks.handlers_for("after_save", Sample) == [handler]
    assert hooks.unregister("after_save", handler, model=Sample)
    assert not hooks.unregister("after_save", handler, model=Sample)

    with open_context(store) as context:
        context.persist(Sample(name="Fay"))

    assert seen == []
