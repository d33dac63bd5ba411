"""Unit tests for contact form validation"""

import pytest

from src.shared.contact.schemas import DEFAULT_SUBJECT
from src.shared.contact.validation import ContactFormValidator, validate_contact_form


class TestContactFormValidator:
    """Test field rules, error collection and normalization"""

    def test_valid_input_is_normalized(self):
        """Test strings are trimmed, email lowercased and default subject applied"""
        result = validate_contact_form({
            "name": "  John Doe ",
            "email": " JohnDoe@Example.com ",
            "message": "  Hello there, how are you?  ",
        })

        assert result.success is True
        assert result.errors == {}
        assert result.data.name == "John Doe"
        assert result.data.email == "johndoe@example.com"
        assert result.data.subject == DEFAULT_SUBJECT
        assert result.data.message == "Hello there, how are you?"

    def test_message_length_boundary(self):
        """Test 9 characters fail and 10 characters pass"""
        base = {"name": "John Doe", "email": "johndoe@example.com"}

        too_short = validate_contact_form({**base, "message": "a" * 9})
        just_enough = validate_contact_form({**base, "message": "a" * 10})

        assert too_short.success is False
        assert too_short.errors["message"] == "Message must be at least 10 characters"
        assert just_enough.success is True

    def test_name_length_boundary(self):
        """Test names need at least two characters"""
        base = {"email": "johndoe@example.com", "message": "A perfectly fine message"}

        assert validate_contact_form({**base, "name": "J"}).errors["name"] == "Name must be at least 2 characters"
        assert validate_contact_form({**base, "name": "Jo"}).success is True

    def test_collects_all_errors(self):
        """Test every violated field is reported, not just the first"""
        result = validate_contact_form({
            "name": "J",
            "email": "not-an-email",
            "subject": "Hi",
            "message": "short",
        })

        assert result.success is False
        assert set(result.errors) == {"name", "email", "subject", "message"}
        assert result.errors["email"] == "Please enter a valid email address"
        assert result.errors["subject"] == "Subject must be at least 3 characters"

    def test_missing_fields(self):
        """Test required fields are reported and subject is optional"""
        result = validate_contact_form({})

        assert result.success is False
        assert result.errors == {
            "name": "Name is required",
            "email": "Email is required",
            "message": "Message is required",
        }

    def test_blank_subject_uses_default(self):
        """Test a whitespace-only subject is treated as absent"""
        result = validate_contact_form({
            "name": "John Doe",
            "email": "johndoe@example.com",
            "subject": "   ",
            "message": "Hello, I have a question.",
        })

        assert result.success is True
        assert result.data.subject == DEFAULT_SUBJECT

    def test_non_string_field(self):
        """Test wrong types are reported as field errors"""
        result = validate_contact_form({
            "name": 123,
            "email": "johndoe@example.com",
            "message": "Hello, I have a question.",
        })

        assert result.success is False
        assert result.errors["name"] == "Name must be a string"

    def test_metadata_aliases_are_accepted(self):
        """Test camelCase client metadata maps onto the schema"""
        result = validate_contact_form({
            "name": "John Doe",
            "email": "johndoe@example.com",
            "message": "Hello, I have a question.",
            "userAgent": "Mozilla/5.0",
            "ipAddress": "203.0.113.7",
            "source": "portfolio",
        })

        assert result.data.user_agent == "Mozilla/5.0"
        assert result.data.ip_address == "203.0.113.7"
        assert result.data.source == "portfolio"

    def test_blocked_domains(self):
        """Test disposable email domains can be rejected"""
        validator = ContactFormValidator(blocked_domains=["mailinator.com"])

        result = validator.validate({
            "name": "John Doe",
            "email": "john@Mailinator.com",
            "message": "Hello, I have a question.",
        })

        assert result.success is False
        assert result.errors["email"] == "Disposable email domains are not allowed"

    def test_none_input_raises(self):
        """Test programmer misuse raises instead of returning a result"""
        with pytest.raises(TypeError):
            ContactFormValidator().validate(None)

    def test_validation_is_deterministic(self):
        """Test repeated validation gives identical results"""
        data = {"name": "J", "email": "bad", "message": "short"}

        assert validate_contact_form(data) == validate_contact_form(data)
