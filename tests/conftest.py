"""Pytest configuration and shared fixtures for the dice game tests."""

import pytest

from fair_dice import CryptoProvider, Die


class FixedCryptoProvider(CryptoProvider):
    """Crypto provider with a fixed key and computer number."""

    KEY = bytes(range(32))

    def __init__(self, computer_number: int):
        self.computer_number = computer_number

    def generate_key(self) -> bytes:
        return self.KEY

    def generate_secure_random(self, max_val: int, randbits=None) -> int:
        return self.computer_number


@pytest.fixture
def fixed_crypto():
    """Factory for a provider that always picks the given computer number."""
    return FixedCryptoProvider


@pytest.fixture
def intransitive_dice():
    """Three dice where each beats exactly one of the others."""
    return [
        Die([2, 2, 4, 4, 9, 9]),
        Die([1, 1, 6, 6, 8, 8]),
        Die([3, 3, 5, 5, 7, 7]),
    ]


@pytest.fixture
def scripted_input(monkeypatch):
    """Feed a fixed list of answers to input(); records each prompt."""

    def install(answers):
        remaining = iter(answers)
        prompts = []

        def fake_input(prompt=""):
            prompts.append(prompt)
            try:
                return next(remaining)
            except StopIteration:
                raise EOFError

        monkeypatch.setattr("builtins.input", fake_input)
        return prompts

    return install
