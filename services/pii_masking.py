"""
PII (Personally Identifiable Information) Masking Service
Masks contact and identity details in free text before it is sent to the
embedding or generation provider
"""
import re
from typing import Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


class PIIMaskingService:
    """Regex-based masking for journal, chat and note text"""

    # Card numbers are matched before phone/SSN so their digit groups are not split
    CARD_NUMBER_PATTERN = re.compile(r'\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b')
    EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
    SSN_PATTERN = re.compile(r'\b\d{3}-\d{2}-\d{4}\b')
    PHONE_PATTERN = re.compile(
        r'\+\d{1,3}[\s-]?\d{2,4}[\s-]?\d{3,4}[\s-]?\d{3,4}\b'
        r'|\(?\b\d{3}\)?[-\s.]?\d{3}[-\s.]?\d{4}\b'
    )

    def __init__(self, extra_terms: Optional[Iterable[str]] = None):
        """
        Initialize the masker.

        Args:
            extra_terms: Additional literal strings to redact (e.g. a user's
                surname or therapist name)
        """
        self.extra_terms = [term for term in (extra_terms or []) if term and len(term) > 2]

    def mask_card_number(self, text: str) -> str:
        def mask_card(match):
            digits = re.sub(r'[-\s]', '', match.group())
            return f"****-****-****-{digits[-4:]}"

        return self.CARD_NUMBER_PATTERN.sub(mask_card, text)

    def mask_email(self, text: str) -> str:
        """
        Mask email addresses, keeping the first letter of the local part.

        Args:
            text: Text containing email addresses

        Returns:
            Text with masked emails
        """
        def mask_address(match):
            local, domain = match.group().split('@', 1)
            tld = domain.rsplit('.', 1)[-1]
            return f"{local[0]}***@***.{tld}"

        return self.EMAIL_PATTERN.sub(mask_address, text)

    def mask_ssn(self, text: str) -> str:
        return self.SSN_PATTERN.sub("***-**-****", text)

    def mask_phone(self, text: str) -> str:
        return self.PHONE_PATTERN.sub("***-***-****", text)

    def mask_terms(self, text: str) -> str:
        for term in self.extra_terms:
            text = re.sub(re.escape(term), "***", text, flags=re.IGNORECASE)
        return text

    def mask_text(self, text: str) -> str:
        """
        Apply every masking rule to a piece of text.

        Args:
            text: Text to mask

        Returns:
            Masked text (empty input is returned unchanged)
        """
        if not text:
            return text

        masked = self.mask_card_number(text)
        masked = self.mask_email(masked)
        masked = self.mask_ssn(masked)
        masked = self.mask_phone(masked)
        masked = self.mask_terms(masked)

        if masked != text:
            logger.debug("Masked PII in outbound text")
        return masked

    def mask_fragments(self, texts: Iterable[str]) -> List[str]:
        return [self.mask_text(text or "") for text in texts]
