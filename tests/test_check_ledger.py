import io
import unittest
from contextlib import redirect_stdout
from unittest import mock

import check_ledger


class TestMissingModules(unittest.TestCase):
    def test_reports_only_failed_imports(self):
        required = [("json", "stdlib"), ("medledger_not_installed", "nothing")]
        output = io.StringIO()
        with mock.patch.object(check_ledger, "REQUIRED", required), redirect_stdout(output):
            missing = check_ledger.missing_modules()

        self.assertEqual(missing, ["medledger_not_installed"])
        self.assertIn("✅ json (stdlib)", output.getvalue())
        self.assertIn("❌ medledger_not_installed (nothing)", output.getvalue())


if __name__ == "__main__":
    unittest.main()
