import os
import shutil
import tarfile
import tempfile
import unittest
import zipfile
from unittest.mock import patch, MagicMock
import requests
from ffdroid.errors import ProvisioningError
from ffdroid.utils import file_manager

class TestExtract(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.dest = os.path.join(self.test_dir, "out")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_zip_keeps_permissions_and_symlinks(self):
        archive = os.path.join(self.test_dir, "ndk.zip")
        with zipfile.ZipFile(archive, "w") as zf:
            info = zipfile.ZipInfo("ndk/bin/clang-18")
            info.external_attr = 0o100755 << 16
            zf.writestr(info, "#!/bin/sh\n")
            link = zipfile.ZipInfo("ndk/bin/clang")
            link.external_attr = 0o120777 << 16
            zf.writestr(link, "clang-18")

        file_manager.extract(archive, self.dest)

        real = os.path.join(self.dest, "ndk", "bin", "clang-18")
        self.assertTrue(os.access(real, os.X_OK))
        self.assertTrue(os.path.islink(os.path.join(self.dest, "ndk", "bin", "clang")))
        self.assertEqual(os.readlink(os.path.join(self.dest, "ndk", "bin", "clang")), "clang-18")
        self.assertFalse(os.path.exists(archive))

    def test_tar(self):
        source = os.path.join(self.test_dir, "hello.txt")
        with open(source, "w") as f:
            f.write("hello")
        archive = os.path.join(self.test_dir, "src.tar.gz")
        with tarfile.open(archive, "w:gz") as tf:
            tf.add(source, arcname="src/hello.txt")

        file_manager.extract(archive, self.dest)

        with open(os.path.join(self.dest, "src", "hello.txt")) as f:
            self.assertEqual(f.read(), "hello")

    def test_zip_slip_is_rejected(self):
        archive = os.path.join(self.test_dir, "evil.zip")
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("../escaped.txt", "x")
        with self.assertRaises(ProvisioningError):
            file_manager.extract(archive, self.dest)
        self.assertFalse(os.path.exists(os.path.join(self.test_dir, "escaped.txt")))

    def test_unsupported_archive(self):
        bogus = os.path.join(self.test_dir, "notes.txt")
        with open(bogus, "w") as f:
            f.write("plain text")
        with self.assertRaises(ProvisioningError):
            file_manager.extract(bogus, self.dest)


class TestDownload(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    @patch("ffdroid.utils.file_manager.requests.get")
    def test_download_writes_file(self, mock_get):
        response = MagicMock()
        response.headers = {"content-length": "6"}
        response.iter_content.return_value = [b"abc", b"", b"def"]
        mock_get.return_value.__enter__.return_value = response

        target = os.path.join(self.test_dir, "file.zip")
        self.assertEqual(file_manager.download("https://example.com/file.zip", target), target)

        with open(target, "rb") as f:
            self.assertEqual(f.read(), b"abcdef")
        self.assertFalse(os.path.exists(target + ".tmp"))

    @patch("ffdroid.utils.file_manager.requests.get")
    def test_download_failure(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("offline")
        target = os.path.join(self.test_dir, "file.zip")
        with self.assertRaises(ProvisioningError):
            file_manager.download("https://example.com/file.zip", target)
        self.assertFalse(os.path.exists(target))
        self.assertFalse(os.path.exists(target + ".tmp"))

    @patch("ffdroid.utils.file_manager.extract")
    @patch("ffdroid.utils.file_manager.download")
    def test_download_and_extract(self, mock_download, mock_extract):
        mock_download.return_value = os.path.join(self.test_dir, "pkg.zip")
        mock_extract.return_value = self.test_dir

        result = file_manager.download_and_extract("https://example.com/a/pkg.zip", self.test_dir)

        self.assertEqual(result, self.test_dir)
        mock_download.assert_called_once_with(
            "https://example.com/a/pkg.zip", os.path.join(self.test_dir, "pkg.zip"), timeout=60
        )
        mock_extract.assert_called_once_with(os.path.join(self.test_dir, "pkg.zip"), self.test_dir)

if __name__ == "__main__":
    unittest.main()
