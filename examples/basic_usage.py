#!/usr/bin/env python3
"""Basic usage example for StegoChat.

Demonstrates a short two-party conversation where every line is an encrypted
message disguised as ordinary chat, then reveals it with the password.
"""

from stegochat import Message, Speaker, get_pipeline


def main() -> None:
    # Load the shared model (downloads on first run)
    print("Loading pipeline...")
    pipeline = get_pipeline(device="auto")
    password = "correct horse battery staple"

    # --- Encrypt a conversation, one message at a time ---
    lines = [
        (Speaker.A, "the package arrives tuesday"),
        (Speaker.B, "understood, same drop point?"),
        (Speaker.A, "yes"),
    ]
    conversation: list[Message] = []
    for speaker, text in lines:
        resolved = pipeline.decrypt_messages(password, conversation)
        result = pipeline.encrypt_message(password, resolved, Message(speaker, text))
        conversation.append(result.encrypted)

    print("\nWhat an observer sees:")
    for message in conversation:
        print(f"{message.speaker.tag} {message.content}")

    # --- Reveal with the password ---
    print("\nWith the password:")
    for message in pipeline.decrypt_messages(password, conversation):
        print(f"{message.speaker.tag} {message.decrypted_content}")

    # --- A wrong password reveals nothing ---
    revealed = pipeline.decrypt_messages("wrong", conversation)
    print(f"\nDecryptable with a wrong password: {sum(m.decrypted_content is not None for m in revealed)}")


if __name__ == "__main__":
    main()
