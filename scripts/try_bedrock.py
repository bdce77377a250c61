# scripts/try_bedrock.py
"""Manual smoke run against live Bedrock: one completion, one chat, one stream."""

from dotenv import load_dotenv

load_dotenv(override=True)  # BEDROCK_* must be in os.environ before settings load

from bedrockbridge.llm import BedrockLLM, ProviderError  # noqa: E402
from bedrockbridge.telemetry import configure_logging  # noqa: E402

MESSAGES = [{"role": "user", "content": "Count to 5"}]


def try_completion(llm: BedrockLLM) -> None:
    print(f"Completion with {llm.defaults.completion_model_name}...")
    response = llm.complete("What is 2+2?", temperature=0)
    print(f"Response: {response.completion!r}")
    print()


def try_chat(llm: BedrockLLM) -> None:
    print(f"Chat with {llm.defaults.chat_completion_model_name}...")
    response = llm.chat({"messages": MESSAGES, "temperature": 0})
    print(f"Response: {response.chat_completion}")
    print(f"Tokens: {response.prompt_tokens} in / {response.completion_tokens} out")
    print()


def try_streaming(llm: BedrockLLM) -> None:
    print("Streaming chat...")

    def on_chunk(event):
        delta = event.get("delta") or {}
        if delta.get("type") == "text_delta":
            print(delta["text"], end="", flush=True)

    response = llm.chat({"messages": MESSAGES}, on_chunk=on_chunk)
    print(f"\nStop reason: {response.stop_reason}")
    print(f"Tokens: {response.total_tokens}")
    print()


def main() -> None:
    configure_logging()
    llm = BedrockLLM()
    for step in (try_completion, try_chat, try_streaming):
        try:
            step(llm)
        except ProviderError as exc:
            print(f"{step.__name__} failed: {type(exc).__name__}: {exc.message}\n")


if __name__ == "__main__":
    main()
