import contextlib
import logging
import threading
import time

logger = logging.getLogger(__name__)

# nesting depth of just_time, per thread
_just_time_state = threading.local()


def _current_depth() -> int:
    return getattr(_just_time_state, 'depth', 0)


@contextlib.contextmanager
def just_time(what='timer', verbose=True):
    depth = _current_depth()
    _just_time_state.depth = depth + 1
    resu_state = {}
    if verbose:
        logger.debug('%sEntering: %s ...', 4 * ' ' * depth, what)
    start_time = time.perf_counter()
    try:
        yield resu_state
    finally:
        _just_time_state.depth = depth
        elapsed = time.perf_counter() - start_time
        resu_state['elapsed'] = elapsed
        if verbose:
            logger.debug('%s... Elapsed %.4gs in: %s', 4 * ' ' * depth, elapsed, what)
