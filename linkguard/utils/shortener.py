"""Shortcode generation utility

Generated shortcodes come from a monotonic Redis counter pushed through a
bijective permutation of the fixed-width base62 space. Distinct counter values
therefore map to distinct shortcodes, and minting a code needs no
collision-check round trip.

Functions:
    generate_shortcode(counter, salt='default_salt', length=7, mult=1315423911):
        Map a counter value to a fixed-length base62 shortcode.

Example:
    >>> from linkguard.utils import generate_shortcode
    >>> generate_shortcode(123, salt='unit_test_salt')
    'XrJQsJI'
"""

import math
import string

import xxhash


ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
BASE = len(ALPHABET)  # 26 lowercase + 26 uppercase + 10 digits


def generate_shortcode(counter: int, salt: str = 'default_salt', length: int = 7, mult: int = 1315423911) -> str:
    """Map a counter value to a fixed-length base62 shortcode.

    The counter goes through an affine permutation `(counter * mult + hash(salt)) mod 62**length`
    before being base62-encoded, which hides the sequence while staying 1:1.

    Args:
        counter (int):
            Non-negative value of the global link counter.
        salt (str, optional):
            Secret string shifting the output space. Defaults to "default_salt".
        length (int, optional):
            Length of the resulting shortcode. Defaults to 7.
        mult (int, optional):
            Multiplicative factor of the permutation. Must be coprime with 62**length.

    Returns:
        str: shortcode made of [a-zA-Z0-9]

    Raises:
        TypeError: on a non-integer counter or non-string salt.
        ValueError: on a negative counter, an empty salt or a non-coprime multiplier.

    NOTE:
        The mapping only wraps around after 62**7 (~3.5 trillion) links. Custom
        shortcodes share the key space, so callers still create links with a
        conditional write and retry on the (rare) clash with a custom code.
    """
    if not isinstance(counter, int):
        raise TypeError(f'Counter must be of type integer (given type: {type(counter)}).')
    if counter < 0:
        raise ValueError(f'Counter must be a non-negative integer (given value: {counter}).')
    if not isinstance(salt, str):
        raise TypeError(f'Salt must be of type string (given type: {type(salt)}).')
    if not salt:
        raise ValueError(f'Salt must be a non-empty string (given value: {salt}).')
    if math.gcd(mult, BASE**length) != 1:
        raise ValueError(f'Multiplicative factor must be coprime with mod ({BASE**length}) (given value: mult={mult}).')

    modulo_space = BASE**length
    salt_hash = xxhash.xxh64_intdigest(salt.encode('utf-8')) % modulo_space
    permuted = (counter * mult + salt_hash) % modulo_space

    # Most significant digit first, left-padded to the fixed length
    digits = [ALPHABET[(permuted // BASE**i) % BASE] for i in range(length)]
    return ''.join(reversed(digits)).rjust(length, ALPHABET[0])
