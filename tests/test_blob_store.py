"""
Unit tests for blob storage: local files, R2 through a mocked client,
remote fetches and backend selection.
"""

import os
import shutil
import sys
import tempfile
import unittest
from io import BytesIO
from unittest.mock import MagicMock, patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import requests
from botocore.exceptions import ClientError
from PIL import Image

import blob_store
from blob_store import (
    LocalBlobStore,
    R2BlobStore,
    create_blob_store,
    generate_unique_filename,
    get_mime_type,
)
from errors import BlobFetchError, BlobStoreFailure

R2_ENV = {
    "R2_ENDPOINT": "https://account.r2.cloudflarestorage.com",
    "R2_ACCESS_KEY_ID": "key",
    "R2_SECRET_ACCESS_KEY": "secret",
    "R2_BUCKET_NAME": "posters",
    "R2_PUBLIC_URL": "https://cdn.example.com/",
}


def png_bytes(color="red"):
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color).save(buffer, format="PNG")
    return buffer.getvalue()


class TestHelpers(unittest.TestCase):

    def test_unique_filename_format(self):
        name = generate_unique_filename("diwali banner.png", "templates/")
        self.assertRegex(name, r"^templates/diwali banner_\d{13}_[a-z0-9]{6}\.png$")

    def test_unique_filenames_differ(self):
        self.assertNotEqual(generate_unique_filename("a.png"), generate_unique_filename("a.png"))

    def test_unique_filename_strips_directories(self):
        self.assertTrue(generate_unique_filename("../../etc/passwd.png").startswith("passwd_"))

    def test_unique_filename_without_extension(self):
        self.assertTrue(generate_unique_filename("").endswith(".bin"))

    def test_mime_types(self):
        self.assertEqual(get_mime_type("a.JPG"), "image/jpeg")
        self.assertEqual(get_mime_type("a.png"), "image/png")
        self.assertEqual(get_mime_type("a.psd"), "image/vnd.adobe.photoshop")
        self.assertEqual(get_mime_type("a.unknown"), "application/octet-stream")
        self.assertEqual(get_mime_type("noext"), "application/octet-stream")


class TestLocalBlobStore(unittest.TestCase):

    def setUp(self):
        self.tmp_dir = tempfile.mkdtemp()
        self.store = LocalBlobStore(self.tmp_dir, url_prefix="/uploads/")

    def tearDown(self):
        shutil.rmtree(self.tmp_dir, ignore_errors=True)

    def test_store_returns_url_and_writes_file(self):
        url = self.store.store(b"data", "templates/a.png", "image/png")
        self.assertEqual(url, "/uploads/templates/a.png")
        with open(os.path.join(self.tmp_dir, "templates", "a.png"), "rb") as f:
            self.assertEqual(f.read(), b"data")

    def test_fetch_image_by_url(self):
        url = self.store.store(png_bytes("blue"), "templates/b.png", "image/png")
        img = self.store.fetch_image(url)
        self.assertEqual(img.getpixel((0, 0)), (0, 0, 255))

    def test_fetch_image_by_path(self):
        path = os.path.join(self.tmp_dir, "direct.png")
        with open(path, "wb") as f:
            f.write(png_bytes())
        self.assertEqual(self.store.fetch_image(path).mode, "RGB")

    def test_fetch_missing_raises(self):
        with self.assertRaises(BlobFetchError):
            self.store.fetch_image("/uploads/templates/missing.png")

    def test_fetch_empty_path_raises(self):
        with self.assertRaises(BlobFetchError):
            self.store.fetch_image("")

    def test_fetch_non_image_raises(self):
        url = self.store.store(b"plain text", "templates/c.png", "image/png")
        with self.assertRaises(BlobFetchError):
            self.store.fetch_image(url)

    def test_delete_by_url_and_key(self):
        url = self.store.store(b"1", "templates/d.png", "image/png")
        self.store.store(b"2", "templates/e.png", "image/png")
        self.store.delete(url)
        self.store.delete("templates/e.png")
        self.assertEqual(os.listdir(os.path.join(self.tmp_dir, "templates")), [])

    def test_delete_missing_is_ignored(self):
        self.store.delete("templates/never-stored.png")

    def test_key_escaping_root_is_rejected(self):
        with self.assertRaises(BlobStoreFailure):
            self.store.store(b"x", "../outside.png", "image/png")

    def test_key_for_foreign_url(self):
        self.assertIsNone(self.store.key_for("https://elsewhere.example.com/a.png"))
        self.assertEqual(self.store.key_for("/uploads/generated/p.jpg"), "generated/p.jpg")


class TestRemoteFetch(unittest.TestCase):

    def setUp(self):
        self.store = LocalBlobStore(tempfile.gettempdir())

    @patch("blob_store.requests.get")
    def test_fetch_http_image(self, mock_get):
        mock_get.return_value = MagicMock(status_code=200, content=png_bytes("green"))
        img = self.store.fetch_image("https://cdn.example.com/templates/a.png")
        self.assertEqual(img.getpixel((1, 1)), (0, 128, 0))
        _, kwargs = mock_get.call_args
        self.assertIn("timeout", kwargs)

    @patch("blob_store.requests.get")
    def test_http_error_status(self, mock_get):
        mock_get.return_value = MagicMock(status_code=404, content=b"")
        with self.assertRaises(BlobFetchError):
            self.store.fetch_image("https://cdn.example.com/templates/a.png")

    @patch("blob_store.requests.get")
    def test_network_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("unreachable")
        with self.assertRaises(BlobFetchError):
            self.store.fetch_image("http://cdn.example.com/templates/a.png")


class TestR2BlobStore(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.store = R2BlobStore(self.client, "posters", "https://cdn.example.com/")

    def test_store_uploads_and_returns_public_url(self):
        url = self.store.store(b"jpeg", "generated/poster_1.jpg", "image/jpeg")
        self.assertEqual(url, "https://cdn.example.com/generated/poster_1.jpg")
        self.client.put_object.assert_called_once_with(
            Bucket="posters", Key="generated/poster_1.jpg", Body=b"jpeg", ContentType="image/jpeg"
        )

    def test_store_failure(self):
        self.client.put_object.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "internal"}}, "PutObject"
        )
        with self.assertRaises(BlobStoreFailure):
            self.store.store(b"jpeg", "generated/poster_1.jpg", "image/jpeg")

    def test_delete_by_public_url(self):
        self.store.delete("https://cdn.example.com/templates/a.png")
        self.client.delete_object.assert_called_once_with(Bucket="posters", Key="templates/a.png")

    def test_delete_failure(self):
        self.client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject"
        )
        with self.assertRaises(BlobStoreFailure):
            self.store.delete("templates/a.png")

    def test_presigned_url(self):
        self.client.generate_presigned_url.return_value = "https://signed"
        self.assertEqual(self.store.presigned_url("templates/a.png", 60), "https://signed")
        self.client.generate_presigned_url.assert_called_once_with(
            "get_object", Params={"Bucket": "posters", "Key": "templates/a.png"}, ExpiresIn=60
        )


class TestCreateBlobStore(unittest.TestCase):

    def test_local_backend(self):
        with patch.dict(os.environ, {"STORAGE_BACKEND": "local", "LOCAL_STORAGE_DIR": tempfile.gettempdir()}):
            store = create_blob_store()
        self.assertIsInstance(store, LocalBlobStore)
        self.assertEqual(store.root_dir, os.path.abspath(tempfile.gettempdir()))

    def test_auto_without_r2_settings_is_local(self):
        env = {"STORAGE_BACKEND": "auto", "R2_ENDPOINT": "", "R2_BUCKET_NAME": ""}
        with patch.dict(os.environ, env):
            self.assertIsInstance(create_blob_store(), LocalBlobStore)

    def test_auto_with_r2_settings_is_r2(self):
        with patch.dict(os.environ, dict(R2_ENV, STORAGE_BACKEND="auto")), \
                patch.object(blob_store.boto3, "client") as mock_client:
            store = create_blob_store()
        self.assertIsInstance(store, R2BlobStore)
        self.assertEqual(store.bucket, "posters")
        self.assertEqual(store.url_for("a.png"), "https://cdn.example.com/a.png")
        self.assertEqual(mock_client.call_args.kwargs["endpoint_url"], R2_ENV["R2_ENDPOINT"])

    def test_r2_backend_requires_settings(self):
        with patch.dict(os.environ, {"STORAGE_BACKEND": "r2", "R2_ENDPOINT": ""}):
            with self.assertRaises(BlobStoreFailure):
                create_blob_store()

    def test_unknown_backend(self):
        with patch.dict(os.environ, {"STORAGE_BACKEND": "ftp", "R2_ENDPOINT": ""}):
            with self.assertRaises(BlobStoreFailure):
                create_blob_store()


if __name__ == "__main__":
    unittest.main()
