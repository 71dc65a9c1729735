import os
import tarfile
import time
import unittest

from splitar.listing import format_listing, format_mode, format_mtime, type_char

from support import dir_member, file_member, make_tarinfo


class ListingTests(unittest.TestCase):
    def setUp(self):
        tz = os.environ.get("TZ")
        os.environ["TZ"] = "UTC"
        time.tzset()
        self.addCleanup(self.restore_tz, tz)

    def restore_tz(self, tz):
        if tz is None:
            os.environ.pop("TZ", None)
        else:
            os.environ["TZ"] = tz
        time.tzset()

    def test_mode_bits(self):
        self.assertEqual(format_mode(0o754), "rwxr-xr--")

    def test_sparse_lists_as_regular_file(self):
        self.assertEqual(type_char(make_tarinfo("s", tarfile.GNUTYPE_SPARSE)), "-")

    def test_device_shows_numbers(self):
        ti = make_tarinfo("null", tarfile.CHRTYPE)
        ti.devmajor, ti.devminor = 1, 3
        self.assertIn("          1:3 ", format_listing("00000", ti))

    def test_local_timestamp(self):
        ti, _ = dir_member("d/")
        ti.mtime = 86400
        self.assertEqual(format_listing("00001", ti), "00001 drw-r--r--              0 1970-01-02 00:00:00 d/")

    def test_out_of_range_mtime_falls_back_to_epoch_seconds(self):
        self.assertEqual(format_mtime(10 ** 15), "1000000000000000")
        ti, _ = file_member("f", 1)
        ti.mtime = 10 ** 15
        self.assertTrue(format_listing("00000", ti).endswith(" 1000000000000000 f"))


if __name__ == "__main__":
    unittest.main()
