"""Minimal demonstration of a streaming chat session."""

import asyncio

from chat_core import ChatSession, GenerationResult


async def echo(history):
    async def parts():
        for word in f"You said: {history[-1].content}".split(" "):
            await asyncio.sleep(0.05)
            yield word + " "

    return GenerationResult.stream(parts())


async def main() -> None:
    session = ChatSession(echo, system_prompt="You are terse.")
    session.add_update_listener(lambda m: print("\rAssistant:", m.content, end="", flush=True))
    await session.send_message("请介绍一下自己")
    print()
    for message in session.messages:
        print(f"{message.role:>9}: {message.content}")


if __name__ == "__main__":
    asyncio.run(main())
