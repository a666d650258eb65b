import unittest

from resource_query.core.errors import RuleConfigurationError
from resource_query.services.compiler import QueryCompiler, normalize_order_input
from resource_query.services.targets import SqlAlchemyTarget
from tests.base import Article, RecordingTarget, make_session_factory


class NormalizeOrderInputTests(unittest.TestCase):
    def test_comma_string(self):
        self.assertEqual(normalize_order_input("a:desc, -b,c"), [["a", "desc"], "-b", "c"])

    def test_list_passthrough(self):
        self.assertEqual(normalize_order_input(["a:asc", ("b", "desc")]), [["a", "asc"], ("b", "desc")])

    def test_empty_and_garbage(self):
        self.assertEqual(normalize_order_input(None), [])
        self.assertEqual(normalize_order_input(""), [])
        self.assertEqual(normalize_order_input(42), [])
        self.assertEqual(normalize_order_input(",,"), [])


class PageSizePolicyTests(unittest.TestCase):
    def test_fixed_size_ignores_request(self):
        compiler = QueryCompiler(15)
        self.assertEqual(compiler.page_size(50), 15)
        self.assertEqual(compiler.page_size(None), 15)

    def test_allowed_sizes(self):
        compiler = QueryCompiler([10, 25, 50])
        self.assertEqual(compiler.page_size(25), 25)
        self.assertEqual(compiler.page_size("50"), 50)
        self.assertEqual(compiler.page_size(999), 10)
        self.assertEqual(compiler.page_size("abc"), 10)
        self.assertEqual(compiler.page_size(None), 10)

    def test_no_pagination(self):
        compiler = QueryCompiler(None)
        self.assertIsNone(compiler.page_size(25))
        target = RecordingTarget()
        compiled = compiler.compile(target, {}, None, page=3, per_page=25)
        self.assertFalse(compiled.is_paginated)
        self.assertEqual(target.calls, [])

    def test_invalid_pagination_raises(self):
        for bad in (0, -5, [], [10, 0], "10", True, [10, "25"]):
            with self.assertRaises(RuleConfigurationError):
                QueryCompiler(bad)


class CompileTests(unittest.TestCase):
    def _compiler(self):
        compiler = QueryCompiler([10, 25, 50])
        compiler.filter("status", "=", "state")
        compiler.order_by("created_at")
        return compiler

    def test_end_to_end_with_recording_target(self):
        target = RecordingTarget()
        compiled = self._compiler().compile(target, {"status": "active"}, "-created_at", page=2, per_page=25)
        self.assertEqual(
            target.calls,
            [
                ("where", "state", "=", "active"),
                ("order_by", "created_at", "desc"),
                ("paginate", 2, 25),
            ],
        )
        self.assertEqual(compiled.applied_filters, ["status"])
        self.assertEqual(compiled.order_by, [("created_at", "desc")])
        self.assertEqual(compiled.meta(), {"applied_filters": ["status"], "order_by": [["created_at", "desc"]]})

    def test_filters_run_before_ordering(self):
        target = RecordingTarget()
        self._compiler().compile(target, {"status": "x"}, "created_at:desc")
        kinds = [call[0] for call in target.calls]
        self.assertEqual(kinds, ["where", "order_by", "paginate"])

    def test_bad_page_number_defaults_to_first(self):
        for page in (None, "abc", 0, -3):
            target = RecordingTarget()
            compiled = self._compiler().compile(target, {}, None, page=page)
            self.assertEqual(compiled.page, 1)
            self.assertEqual(target.calls[-1], ("paginate", 1, 10))

    def test_malformed_order_tokens_dropped(self):
        target = RecordingTarget()
        compiled = self._compiler().compile(target, {}, ":desc,-,unknown", paginate=False)
        self.assertEqual(compiled.order_by, [])
        self.assertEqual(target.calls, [])

    def test_flat_filter_parameter(self):
        self.assertIsNone(QueryCompiler(filter_parameter="").filters.filter_parameter)
        self.assertEqual(QueryCompiler().filters.filter_parameter, "filters")


class CompileSqlAlchemyTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.engine, cls.SessionLocal = make_session_factory()

    @classmethod
    def tearDownClass(cls):
        cls.engine.dispose()

    def test_second_page_of_active_rows_newest_first(self):
        compiler = QueryCompiler([10, 25])
        compiler.filter("status", "=", "state")
        compiler.order_by("created_at")
        with self.SessionLocal() as session:
            target = SqlAlchemyTarget(session.query(Article), Article)
            compiled = compiler.compile(target, {"status": "active"}, "-created_at", page=2, per_page=10)
            rows = target.all()
            meta = target.page_meta()
        self.assertEqual(compiled.per_page, 10)
        self.assertEqual([row.id for row in rows], list(range(30, 0, -3)))
        self.assertEqual(meta, {"current_page": 2, "last_page": 2, "per_page": 10, "total": 20})

    def test_unpaged_returns_everything(self):
        compiler = QueryCompiler(None)
        compiler.filter("tag", "in")
        with self.SessionLocal() as session:
            target = SqlAlchemyTarget(session.query(Article), Article)
            compiler.compile(target, {"tag": ["blog", "docs"]}, None)
            self.assertEqual(len(target.all()), 40)
            self.assertIsNone(target.page_meta())

    def test_to_sql_mentions_clauses(self):
        compiler = QueryCompiler(None)
        compiler.filter("status", "=", "state")
        compiler.order_by("score")
        with self.SessionLocal() as session:
            target = SqlAlchemyTarget(session.query(Article), Article)
            compiler.compile(target, {"status": "draft"}, "-score")
            sql = target.to_sql()
        self.assertIn("WHERE", sql)
        self.assertIn("ORDER BY", sql)
        self.assertIn("DESC", sql)


if __name__ == "__main__":
    unittest.main()
