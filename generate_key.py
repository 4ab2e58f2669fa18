from dnsdist_console import crypto

# Quick one-off keygen for a dnsdist console.
# - 32 random bytes from libsodium, same as makeKey() inside dnsdist.
# - Paste the setKey() line into dnsdist.conf and keep the base64 value for
#   the client (--key or DNSDIST_CONSOLE_KEY).

# 1) Generate the key.
key_b64 = crypto.b64_encode_key(crypto.generate_key())

# 2) Print it the way dnsdist's config expects.
print(f'setKey("{key_b64}")')
