import pytest

from cipher_solver.core.config import get_settings
from cipher_solver.services.optimization.scoring import clear_language_model_cache


ENGLISH_TEXT = (
    "CRYPTOGRAPHY IS THE STUDY OF SECURE COMMUNICATION IN THE PRESENCE "
    "OF ADVERSARIES. LONG BEFORE COMPUTERS EXISTED PEOPLE INVENTED CIPHERS "
    "TO HIDE MEANING FROM UNAUTHORIZED READERS. SOME METHODS RELIED ON SIMPLE "
    "SUBSTITUTION WHILE OTHERS USED TRANSPOSITION OR PERIODIC KEYS. "
    "THE ANCIENT GENERALS OF ROME SENT ORDERS TO THEIR ARMIES WRITTEN WITH A "
    "SHIFTED ALPHABET, AND FOR A LONG TIME THEIR ENEMIES COULD NOT READ THEM. "
    "IN THE NINTH CENTURY AN ARAB SCHOLAR DESCRIBED HOW THE FREQUENCY OF EACH "
    "LETTER IN A LANGUAGE COULD BE USED TO BREAK SUCH A CIPHER, AND FROM THAT "
    "MOMENT THE SIMPLE SUBSTITUTION WAS NO LONGER SAFE. THE RENAISSANCE BROUGHT "
    "THE POLYALPHABETIC CIPHER, WHICH USES A KEYWORD TO CHANGE THE SHIFT FOR "
    "EVERY LETTER, AND FOR THREE HUNDRED YEARS IT WAS CALLED THE UNBREAKABLE "
    "CIPHER UNTIL AN OFFICER OF THE PRUSSIAN ARMY SHOWED THAT THE REPEATED "
    "WORDS OF THE MESSAGE REVEAL THE LENGTH OF THE KEY."
)


@pytest.fixture
def english_text() -> str:
    """A few paragraphs of ordinary English prose."""
    return ENGLISH_TEXT


@pytest.fixture
def clean_caches():
    """Reset cached settings and the shared language model around a test."""
    get_settings.cache_clear()
    clear_language_model_cache()
    yield
    get_settings.cache_clear()
    clear_language_model_cache()
