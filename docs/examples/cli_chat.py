import asyncio
import os
from typing import Annotated, Any, Dict, List

from dotenv import load_dotenv
from google import genai
from openai import AsyncOpenAI
from pydantic import Field

from toolcall_engine import (
    EngineSettings,
    GeminiProvider,
    ModelProvider,
    OpenAIProvider,
    Orchestrator,
    ToolRegistry,
    setup_logging,
)

# Load environment variables
load_dotenv()

PLACES = [
    {"id": 1, "name": "Pizzaria Bella", "city": "Porto Alegre", "description": "Wood-fired pizza."},
    {"id": 2, "name": "Cantina Nonna", "city": "Porto Alegre", "description": "Family pasta place."},
    {"id": 3, "name": "Sushi Kai", "city": "Curitiba", "description": "Omakase counter."},
]

registry = ToolRegistry()


@registry.tool
def search_places(
    query: Annotated[str, Field(description="What to look for, e.g. 'pizza'")],
    city: Annotated[str | None, Field(description="City to search in")] = None,
    limit: Annotated[int, Field(description="Maximum number of results")] = 10,
) -> List[Dict[str, Any]]:
    """Search restaurants by free text and optional city."""
    found = [
        place
        for place in PLACES
        if query.lower() in (place["name"] + place["description"]).lower()
        and (city is None or place["city"].lower() == city.lower())
    ]
    return found[:limit]


@registry.tool
def get_place(place_id: Annotated[int, Field(description="Identifier returned by search_places")]) -> Dict[str, Any]:
    """Fetch one restaurant by id."""
    for place in PLACES:
        if place["id"] == place_id:
            return place
    return {"error": f"No place with id {place_id}"}


def build_provider() -> ModelProvider | None:
    """Prefer Gemini when a Google key is configured, else OpenAI."""
    google_key = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    if google_key:
        print("Using Gemini.")
        return GeminiProvider(genai.Client(api_key=google_key).aio, model_name="gemini-flash-latest")

    openai_key = os.getenv("OPENAI_API_KEY")
    if openai_key:
        print("Using OpenAI.")
        return OpenAIProvider(AsyncOpenAI(api_key=openai_key), model_name="gpt-4o-mini")
    return None


async def main() -> None:
    """
    Main function to run the CLI chat against the execution engine.
    """
    setup_logging()
    print("Welcome to the CLI Chat (tool-calling engine)!")

    provider = build_provider()
    if provider is None:
        print("Error: set GOOGLE_API_KEY or OPENAI_API_KEY in your environment.")
        return

    settings = EngineSettings()
    orchestrator = Orchestrator(
        provider=provider,
        backend=registry,
        config=settings.to_config(),
        default_model=settings.default_model,
    )

    history: List[Dict[str, str]] = []

    print("\nStart chatting! Type 'exit' or 'quit' to stop.")
    while True:
        user_input = input("\nYou: ").strip()
        if user_input.lower() in ["exit", "quit"]:
            print("Goodbye!")
            break

        if not user_input:
            continue

        try:
            response = await orchestrator.process_request(user_input, history=history)
            print(f"Assistant: {response.text}")
            for item in response.gathered_data:
                print(f"  [{item.tool}] {item.args}")
            history.append({"role": "user", "text": user_input})
            history.append({"role": "model", "text": response.text})

        except Exception as e:
            print(f"An error occurred: {e}")


if __name__ == "__main__":
    asyncio.run(main())
