import os
import tempfile
import threading
import unittest

from werkzeug.serving import make_server

from bump_version import LAYOUT, bump, bump_file
from client import get_counts, parse_counts, run_load_test
from counters import load_counters
from server import create_app


class TestBumpVersion(unittest.TestCase):
    def test_bumps_every_version(self):
        content = '<link href="/public/app.css?v=9"><script src="/public/app.js?v=41"></script>'
        self.assertEqual(
            bump(content),
            '<link href="/public/app.css?v=10"><script src="/public/app.js?v=42"></script>',
        )

    def test_leaves_other_text_alone(self):
        self.assertEqual(bump("version 3, ?x=1"), "version 3, ?x=1")

    def test_bump_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "layout.html")
            with open(path, "w", encoding="utf-8") as f:
                f.write('<link href="/public/app.css?v=1">')
            bump_file(path)
            with open(path, encoding="utf-8") as f:
                self.assertEqual(f.read(), '<link href="/public/app.css?v=2">')

    def test_layout_has_versioned_assets(self):
        with open(LAYOUT, encoding="utf-8") as f:
            self.assertRegex(f.read(), r"app\.css\?v=\d+")


class TestClient(unittest.TestCase):
    def test_parse_counts(self):
        html = '<span data-visits="11">11 visits</span><span data-likes="5">5 likes</span>'
        self.assertEqual(parse_counts(html), (11, 5))


class TestLoadClient(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.app = create_app({
            "STORE_PATH": os.path.join(self.tmp.name, "jairo.db"),
            "COUNTER_MODE": "direct",
            "LIKE_MODE": "likes-only",
        })
        self.site = self.app.extensions["jairo"]
        self.server = make_server("127.0.0.1", 0, self.app, threaded=True)
        self.base = f"http://127.0.0.1:{self.server.server_port}"
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def tearDown(self):
        self.server.shutdown()
        self.thread.join()
        self.server.server_close()
        self.site.close()
        self.tmp.cleanup()

    def test_get_counts_reads_homepage(self):
        self.assertEqual(get_counts(self.base), (2, 0))

    def test_likes_add_up(self):
        likes_before, likes_after, expected = run_load_test(3, 5, base=self.base)
        self.assertEqual(likes_before, 0)
        self.assertEqual(expected, 15)
        self.assertEqual(likes_after, expected)
        self.assertEqual(load_counters(self.site.store).likes, 15)


if __name__ == '__main__':
    unittest.main()
