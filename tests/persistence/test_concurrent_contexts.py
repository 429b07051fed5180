import threading

from unitorm.backends import MemoryBackend, MemoryStore
from unitorm.core import IntegerField, Model
from unitorm.persistence import ContextSettings, PersistenceContextFactory


class Reading(Model):
    sensor = IntegerField(nullable=False)
    value = IntegerField()


def test_contexts_in_separate_threads_share_one_store():
    store = MemoryStore("concurrent")
    factory = PersistenceContextFactory(lambda: MemoryBackend(store), settings=ContextSettings(), models=[Reading])
    errors: list[Exception] = []
    identities: list[int] = []
    lock = threading.Lock()
    barrier = threading.Barrier(4)

    def worker(sensor: int) -> None:
        try:
            barrier.wait()
            for value in range(25):

                def work(context, value=value):
                    reading = Reading(sensor=sensor, value=value)
                    context.persist(reading)
                    return reading.id

                identity = factory.run_in_transaction(work)
                with lock:
                    identities.append(identity)
        except Exception as exc:  # pragma: no cover - failure path
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(sensor,)) for sensor in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(set(identities)) == 100
    assert store.row_count("reading") == 100
