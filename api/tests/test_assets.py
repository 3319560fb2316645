"""Test image validation and the asset provider wrapper."""

import pytest

from chirp import assets, settings
from chirp.assets import AssetUploadError

from conftest import png_bytes, png_header_only


class TestNormalizeMimeType:
    def test_jpg_alias(self):
        assert assets.normalize_mime_type("image/jpg") == "image/jpeg"

    def test_extension_fallback(self):
        assert assets.normalize_mime_type("application/octet-stream", "photo.WEBP") == "image/webp"

    def test_rejects_unknown_type(self):
        with pytest.raises(AssetUploadError):
            assets.normalize_mime_type("image/svg+xml", "drawing.svg")


class TestValidateImage:
    def test_returns_dimensions(self):
        assert assets.validate_image(png_bytes((12, 5)), "image/png") == (12, 5)

    def test_rejects_oversized_file(self, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_BYTES", 10)

        with pytest.raises(AssetUploadError, match="exceeds maximum"):
            assets.validate_image(png_bytes(), "image/png")

    def test_rejects_non_image_bytes(self):
        with pytest.raises(AssetUploadError, match="valid image"):
            assets.validate_image(b"definitely not a png", "image/png")

    def test_rejects_decompression_bomb(self):
        with pytest.raises(AssetUploadError, match="valid image"):
            assets.validate_image(png_header_only(30000, 30000), "image/png")

    def test_rejects_empty_file(self):
        with pytest.raises(AssetUploadError):
            assets.validate_image(b"", "image/png")


class TestUpload:
    def test_profile_upload_uses_profile_folder(self, fake_cloudinary):
        stored = assets.upload_profile_image(png_bytes(), "image/png", "me.png")

        assert stored.key == "chirp/profile_images/asset1"
        assert stored.url.endswith("chirp/profile_images/asset1.png")
        assert fake_cloudinary.uploads[0]["options"]["transformation"][0]["crop"] == "fill"

    def test_falls_back_to_data_uri(self, fake_cloudinary):
        fake_cloudinary.fail_uploads = 1

        stored = assets.upload_cover_image(png_bytes(), "image/png")

        assert stored.key == "chirp/profile_covers/asset1"
        assert fake_cloudinary.uploads[0]["file"].startswith("data:image/png;base64,")

    def test_both_attempts_failing_raises(self, fake_cloudinary):
        fake_cloudinary.fail_uploads = 2

        with pytest.raises(AssetUploadError, match="Image upload failed"):
            assets.upload_post_image(png_bytes(), "image/png")

        assert fake_cloudinary.uploads == []

    def test_invalid_image_never_reaches_provider(self, fake_cloudinary):
        with pytest.raises(AssetUploadError):
            assets.upload_post_image(b"nope", "image/png")

        assert fake_cloudinary.uploads == []


class TestDeleteAsset:
    def test_deletes_uploaded_key(self, fake_cloudinary):
        assert assets.delete_asset("chirp/posts/asset9") is True
        assert fake_cloudinary.destroyed == ["chirp/posts/asset9"]

    @pytest.mark.parametrize("key", [None, "", "defaults/profile", "defaults/cover"])
    def test_skips_missing_and_default_keys(self, fake_cloudinary, key):
        assert assets.delete_asset(key) is False
        assert fake_cloudinary.destroyed == []

    def test_provider_errors_are_not_raised(self, monkeypatch):
        def broken_destroy(public_id, **options):
            raise RuntimeError("timeout")

        monkeypatch.setattr(assets.cloudinary.uploader, "destroy", broken_destroy)

        assert assets.delete_asset("chirp/posts/asset1") is False
