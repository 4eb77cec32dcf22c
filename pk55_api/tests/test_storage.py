import unittest
from unittest.mock import patch

from pk55_api.storage import (
    InMemoryMediaStorageClient,
    S3MediaStorageClient,
    build_public_id,
)


class BuildPublicIdTests(unittest.TestCase):
    def test_keeps_filename_extension(self):
        public_id = build_public_id("pk55", "image/jpeg", "Holiday.JPG")
        self.assertTrue(public_id.startswith("pk55/"))
        self.assertTrue(public_id.endswith(".jpg"))

    def test_guesses_extension_from_content_type(self):
        self.assertTrue(build_public_id("pk55", "image/png", "upload").endswith(".png"))

    def test_ids_are_unique(self):
        self.assertNotEqual(
            build_public_id("pk55", "image/png", "a.png"),
            build_public_id("pk55", "image/png", "a.png"),
        )


class InMemoryMediaStorageClientTests(unittest.TestCase):
    def test_upload_and_delete(self):
        client = InMemoryMediaStorageClient()
        asset = client.upload_image(b"data", "image/png", "a.png")
        self.assertEqual(asset.url, f"https://media.example.test/{asset.public_id}")
        self.assertEqual(client.stored_objects[asset.public_id], (b"data", "image/png"))

        client.delete_image(asset.public_id)
        self.assertNotIn(asset.public_id, client.stored_objects)


class S3MediaStorageClientTests(unittest.TestCase):
    @patch("pk55_api.storage.boto3.client")
    def test_upload_puts_public_object(self, mock_client_factory):
        s3 = mock_client_factory.return_value
        client = S3MediaStorageClient(
            bucket="gallery",
            region="ap-south-1",
            endpoint="https://s3.example.com",
            access_key_id="key",
            secret_access_key="secret",
            public_base_url="https://cdn.example.com/",
        )

        asset = client.upload_image(b"data", "image/png", "a.png")

        s3.put_object.assert_called_once()
        kwargs = s3.put_object.call_args.kwargs
        self.assertEqual(kwargs["Bucket"], "gallery")
        self.assertEqual(kwargs["Key"], asset.public_id)
        self.assertEqual(kwargs["ContentType"], "image/png")
        self.assertEqual(kwargs["ACL"], "public-read")
        self.assertEqual(asset.url, f"https://cdn.example.com/{asset.public_id}")

    @patch("pk55_api.storage.boto3.client")
    def test_url_falls_back_to_bucket_endpoint(self, mock_client_factory):
        client = S3MediaStorageClient(
            bucket="gallery",
            region="",
            endpoint="https://s3.example.com",
            access_key_id="",
            secret_access_key="",
        )
        asset = client.upload_image(b"data", "image/png", "a.png")
        self.assertEqual(
            asset.url, f"https://gallery.s3.example.com/{asset.public_id}"
        )

        client.delete_image(asset.public_id)
        mock_client_factory.return_value.delete_object.assert_called_once_with(
            Bucket="gallery", Key=asset.public_id
        )


if __name__ == "__main__":
    unittest.main()
