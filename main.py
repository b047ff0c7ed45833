"""
Graph Workflow Runtime 示例入口

从环境变量读取配置，解析 examples/order_flow.yaml，并用一段脚本化的对话驱动会话。
"""
import asyncio
import logging
from pathlib import Path

from graph_runtime import FlowRunner, FunctionTask, GraphParser, TaskResult
from graph_runtime.config import RuntimeSettings, configure_logging, create_session_repository


logger = logging.getLogger(__name__)


async def greet(context):
    return TaskResult.move_to_next_direct("Welcome to the tea shop.")


async def ask_item(context):
    item = context.get("item")
    if not item:
        return TaskResult.wait_for_input("What would you like to order?", "waiting for item")
    return TaskResult.move_to_next_direct(f"One {item}, noted.")


async def confirm(context):
    if not context.contains("confirmed"):
        return TaskResult.wait_for_input("Shall I place the order? (yes/no)", "waiting for confirmation")
    return TaskResult.move_to_next_direct()


async def place_order(context):
    return TaskResult.end(f"Your {context.get('item')} is on its way.", "order placed")


async def cancel(context):
    return TaskResult.end("Order cancelled.", "order cancelled")


TASKS = {
    "greet": FunctionTask("greet", greet),
    "ask_item": FunctionTask("ask_item", ask_item),
    "confirm": FunctionTask("confirm", confirm),
    "place_order": FunctionTask("place_order", place_order),
    "cancel": FunctionTask("cancel", cancel),
}


async def main():
    settings = RuntimeSettings.from_env()
    configure_logging(settings.log_level)

    graph = GraphParser().parse(Path(__file__).parent / "examples" / "order_flow.yaml", TASKS)
    storage = await create_session_repository(settings)
    runner = FlowRunner(
        graph,
        storage,
        default_timeout=settings.task_timeout,
        max_chain_steps=settings.max_chain_steps,
        max_chat_messages=settings.chat_history_limit
    )

    try:
        session_id = await runner.create_session()
        script = [
            ({}, "hi"),
            ({"item": "green tea"}, "green tea please"),
            ({"confirmed": True}, "yes"),
        ]
        for data, message in script:
            result = await runner.run(session_id, data=data, message=message)
            for response in result.responses:
                print(f"assistant> {response}")
            logger.info(f"Session {session_id}: {result.status.value}")

        snapshot = await runner.inspect(session_id)
        print(snapshot.model_dump_json(indent=2))
    finally:
        await runner.close()


if __name__ == "__main__":
    asyncio.run(main())
