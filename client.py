import re
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import requests

BASE = "http://127.0.0.1:3003"

COUNTS_RE = re.compile(r'data-(visits|likes)="(\d+)"')


def parse_counts(html):
    """Pull (visits, likes) out of a rendered homepage."""
    found = dict(COUNTS_RE.findall(html))
    return int(found["visits"]), int(found["likes"])


def get_counts(base=BASE, session=None):
    # The cached homepage lags one request behind: the first GET triggers
    # a fresh render, the second one returns it.
    s = session or requests.Session()
    s.get(f"{base}/").raise_for_status()
    time.sleep(0.2)
    r = s.get(f"{base}/")
    r.raise_for_status()
    return parse_counts(r.text)


def run_load_test(num_clients, likes_per_client, base=BASE):
    _, likes_before = get_counts(base)
    total = num_clients * likes_per_client
    barrier = Barrier(num_clients)

    def worker():
        session = requests.Session()
        barrier.wait()
        for _ in range(likes_per_client):
            r = session.post(f"{base}/like", allow_redirects=False, timeout=5)
            if r.status_code != 302:
                raise RuntimeError(f"Like failed with status {r.status_code}")

    start = time.time()

    with ThreadPoolExecutor(max_workers=num_clients) as ex:
        futures = [ex.submit(worker) for _ in range(num_clients)]
        for f in futures:
            f.result()

    elapsed = time.time() - start
    visits, likes_after = get_counts(base)
    throughput = total / elapsed if elapsed > 0 else float("inf")
    expected = likes_before + total

    print(
        f"{num_clients} clients | "
        f"time={elapsed:.2f}s | "
        f"throughput={throughput:.1f} rps | "
        f"likes={likes_after} expected={expected} ok={likes_after == expected} | "
        f"visits={visits}"
    )
    return likes_before, likes_after, expected


if __name__ == "__main__":
    base = sys.argv[1] if len(sys.argv) > 1 else BASE
    likes_per_client = int(sys.argv[2]) if len(sys.argv) > 2 else 1000
    for num_clients in [1, 2, 5, 10]:
        run_load_test(num_clients=num_clients, likes_per_client=likes_per_client, base=base)
