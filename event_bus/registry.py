_consumers = []


def register(consumer_cls):
    """Class decorator that makes a BaseConsumer subclass discoverable by run_event_consumers."""
    if consumer_cls not in _consumers:
        _consumers.append(consumer_cls)
    return consumer_cls


def registered_consumers():
    return list(_consumers)
