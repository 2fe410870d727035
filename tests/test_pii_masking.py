"""Tests for outbound PII masking."""

from services.pii_masking import PIIMaskingService


def test_masks_email():
    masked = PIIMaskingService().mask_text("Reach me at sam.lee@example.com please")
    assert masked == "Reach me at s***@***.com please"


def test_masks_phone_numbers():
    masker = PIIMaskingService()
    assert masker.mask_text("Call 555-123-4567") == "Call ***-***-****"
    assert "***-***-****" in masker.mask_text("Mobile +60 12 345 6789")


def test_masks_ssn_and_card():
    masker = PIIMaskingService()
    assert masker.mask_text("SSN 123-45-6789") == "SSN ***-**-****"
    assert masker.mask_text("Card 4111 1111 1111 1234") == "Card ****-****-****-1234"


def test_masks_extra_terms_case_insensitively():
    masker = PIIMaskingService(extra_terms=["Rivera", "Jo"])
    assert masker.mask_text("Dr. rivera said hi to Jo") == "Dr. *** said hi to Jo"


def test_plain_text_is_unchanged():
    masker = PIIMaskingService()
    assert masker.mask_text("Mood 6/10 after a walk") == "Mood 6/10 after a walk"
    assert masker.mask_text("") == ""
    assert masker.mask_fragments(["a", None]) == ["a", ""]
