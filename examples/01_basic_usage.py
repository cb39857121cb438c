"""
Basic Usage Examples

Unary generateContent, streaming and model listing.
Set GEMINI_API_KEY before running.
"""

from src.gemini_transport import ApiKeyAuth, GeminiHTTPClient, GeminiTransportError

PROMPT = {"contents": [{"role": "user", "parts": [{"text": "Write a haiku about retries"}]}]}


def generate(client: GeminiHTTPClient):
    """Single request, single JSON object."""
    print("\n=== generateContent ===")
    data = client.post("models/gemini-pro:generateContent", body=PROMPT)
    for candidate in data.get("candidates", []):
        for part in candidate["content"]["parts"]:
            print(part.get("text", ""))


def stream(client: GeminiHTTPClient):
    """Chunks are printed as soon as each JSON object is complete."""
    print("\n=== streamGenerateContent ===")
    for chunk in client.post_stream("models/gemini-pro:streamGenerateContent", body=PROMPT):
        for candidate in chunk.get("candidates", []):
            for part in candidate.get("content", {}).get("parts", []):
                print(part.get("text", ""), end="", flush=True)
    print()


def list_models(client: GeminiHTTPClient):
    print("\n=== models ===")
    for model in client.get("models").get("models", []):
        print(model["name"])


if __name__ == "__main__":
    with GeminiHTTPClient(ApiKeyAuth.from_env()) as client:
        try:
            list_models(client)
            generate(client)
            stream(client)
        except GeminiTransportError as e:
            print(f"{e.kind.value}: {e}")
