"""StegoChat: encrypted chat messages disguised as ordinary chat lines.

A message is compressed with a language-model entropy coder, encrypted with a
password-derived key, then re-expanded by the same language model into a
plausible chat line.  Anyone with the password recovers the exact message;
to anyone else it reads like normal conversation.

Example::

    from stegochat import Message, Speaker, get_pipeline

    pipeline = get_pipeline()
    result = pipeline.encrypt_message("pw", [], Message(Speaker.A, "hi"))
    print(result.encrypted.content)
    assert pipeline.decrypt_messages("pw", [result.encrypted])[0].decrypted_content == "hi"
"""

from .bytes2text import Bytes2TextCodec, GenerationConfig
from .context import EOM_TOKEN, build_context
from .crypto import Cypher
from .messages import Message, Speaker, dump_conversation, load_conversation
from .model import (
    HFLanguageModel,
    LanguageModel,
    ModelInfo,
    get_model_info,
    list_models,
    load_language_model,
)
from .pipeline import (
    DecodeStatus,
    DecryptOutcome,
    EncryptResult,
    Pipeline,
    close_pipeline,
    get_pipeline,
)
from .text2bytes import Text2BytesCodec
from .utils import (
    DecodingFault,
    StegoCryptoError,
    StegoDecodeError,
    StegoEncodeError,
    StegoError,
    StegoModelError,
    StegoRoundtripError,
    StegoTokenizationError,
    TokenError,
)

__all__ = [
    "Bytes2TextCodec",
    "Cypher",
    "DecodeStatus",
    "DecodingFault",
    "DecryptOutcome",
    "EOM_TOKEN",
    "EncryptResult",
    "GenerationConfig",
    "HFLanguageModel",
    "LanguageModel",
    "Message",
    "ModelInfo",
    "Pipeline",
    "Speaker",
    "StegoCryptoError",
    "StegoDecodeError",
    "StegoEncodeError",
    "StegoError",
    "StegoModelError",
    "StegoRoundtripError",
    "StegoTokenizationError",
    "Text2BytesCodec",
    "TokenError",
    "build_context",
    "close_pipeline",
    "dump_conversation",
    "get_model_info",
    "get_pipeline",
    "list_models",
    "load_conversation",
    "load_language_model",
]
