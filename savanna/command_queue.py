import asyncio
import logging
from typing import Any, Awaitable, Callable


class CommandQueue:
    """Single-writer FIFO: producers enqueue and await their own result.

    One consumer task drains the queue strictly in order; the next command
    starts only after the handler for the previous one has returned.
    """

    def __init__(self, handler: Callable[[Any], Awaitable[Any]], maxsize: int = 50):
        self.handler = handler
        self.maxsize = maxsize
        self.queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._consumer is not None and not self._consumer.done()

    def start(self):
        """Start the consumer task on the running event loop"""
        if self.running:
            return
        # A fresh queue per start: asyncio queues bind to the loop that first uses them.
        self.queue = asyncio.Queue(maxsize=self.maxsize)
        self._consumer = asyncio.get_running_loop().create_task(self._drain())

    async def stop(self):
        """Finish queued commands, then stop the consumer"""
        if not self.running:
            return
        await self.queue.join()
        self._consumer.cancel()
        try:
            await self._consumer
        except asyncio.CancelledError:
            pass
        self._consumer = None

    async def put(self, command: Any) -> Any:
        """Enqueue a command and wait for its result

        Args:
            command (Any): Raw command handed to the handler

        Returns:
            Any: Whatever the handler returned for this command
        """
        if not self.running:
            raise RuntimeError("Command queue is not running")
        future = asyncio.get_running_loop().create_future()
        await self.queue.put((command, future))
        # Once enqueued a command runs to completion even if the caller goes away.
        return await asyncio.shield(future)

    async def _drain(self):
        while True:
            command, future = await self.queue.get()
            try:
                result = await self.handler(command)
                if not future.done():
                    future.set_result(result)
            except Exception as e:
                logging.error(f"Command handler raised: {e}")
                if not future.done():
                    future.set_exception(e)
            finally:
                self.queue.task_done()
