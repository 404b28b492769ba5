import asyncio
import logging
import signal
from typing import Any, Dict

import redis.asyncio as redis

from common.config import settings
from common.database import create_session_factory
from lifecycle_engine.classifiers import BaseLeadClassifier, KeywordLeadClassifier, get_lead_classifier
from lifecycle_worker.processor import MessageProcessor

logger = logging.getLogger("lifecycle_worker")


# Set by the signal handler for graceful shutdown
shutdown_event = asyncio.Event()


WORKER_NAMES = ["lifecycle_worker_1", "lifecycle_worker_2"]


def load_classifier(name: str) -> BaseLeadClassifier:
    """Builds the configured classifier, falling back to keywords for unknown names"""
    try:
        return get_lead_classifier(name)
    except ValueError as e:
        logger.warning(f"[LIFECYCLE] {e}, falling back to keyword classifier")
        return KeywordLeadClassifier()


async def ack_successful_messages(
    redis_client,
    stream_name: str,
    group_name: str,
    msg_ids: list[str],
    results: list[bool]
):
    """Acknowledges only the messages that were processed successfully"""
    for message_id, ok in zip(msg_ids, results):
        if ok:
            await redis_client.xack(stream_name, group_name, message_id)


async def process_single_message(
    processor: MessageProcessor,
    message_data: Dict[str, Any]
) -> bool:
    """
    Processes one message from the queue.
    """
    try:
        return await processor.process_message(message_data)

    except Exception as e:
        logger.exception(f"[LIFECYCLE_ERROR] Error while processing message: {e} message={message_data}")
        return False


async def _process_with_semaphore(
    processor: MessageProcessor,
    message_data: Dict[str, Any],
    semaphore: asyncio.Semaphore
):
    async with semaphore:
        return await process_single_message(processor, message_data)


async def _process_batch(
    redis_client,
    processor: MessageProcessor,
    semaphore: asyncio.Semaphore,
    batch: list
):
    tasks = [
        _process_with_semaphore(processor, message_data, semaphore)
        for _, message_data in batch
    ]
    results = await asyncio.gather(*tasks)
    await ack_successful_messages(
        redis_client,
        settings.REDIS_STREAM,
        settings.REDIS_CONSUMER_GROUP,
        [message_id for message_id, _ in batch],
        results
    )


async def main_loop(consumer_name: str, semaphore: asyncio.Semaphore):
    """Main message processing loop"""
    logger.info(
        f"[LIFECYCLE] Starting consumer={consumer_name} "
        f"REDIS_STREAM={settings.REDIS_STREAM} GROUP={settings.REDIS_CONSUMER_GROUP} "
        f"BATCH_SIZE={settings.BATCH_SIZE} BLOCK={settings.STREAM_BLOCK_TIME}"
    )
    redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)

    engine, session_factory = create_session_factory()
    processor = MessageProcessor(session_factory, load_classifier(settings.LEAD_CLASSIFIER))

    try:
        await redis_client.xgroup_create(
            name=settings.REDIS_STREAM,
            groupname=settings.REDIS_CONSUMER_GROUP,
            id="0-0",
            mkstream=True
        )
        logger.info(f"[LIFECYCLE] Consumer group created: stream={settings.REDIS_STREAM} group={settings.REDIS_CONSUMER_GROUP}")
    except redis.ResponseError as e:
        if "BUSYGROUP" not in str(e):
            raise
        logger.info(f"[LIFECYCLE] Consumer group already exists: stream={settings.REDIS_STREAM} group={settings.REDIS_CONSUMER_GROUP}")

    while not shutdown_event.is_set():
        try:
            # Pick up messages another consumer left pending
            try:
                pending_messages = await redis_client.xautoclaim(
                    name=settings.REDIS_STREAM,
                    groupname=settings.REDIS_CONSUMER_GROUP,
                    consumername=consumer_name,
                    min_idle_time=1000,
                    start_id="0-0",
                    count=settings.BATCH_SIZE
                )
                pending_msgs_list = pending_messages[1] if pending_messages else []
            except redis.ResponseError as e:
                logger.warning(f"[LIFECYCLE] XAUTOCLAIM failed: {e}")
                pending_msgs_list = []

            if pending_msgs_list:
                logger.info(f"[LIFECYCLE] Claimed {len(pending_msgs_list)} pending messages")
                await _process_batch(redis_client, processor, semaphore, pending_msgs_list)

            messages = await redis_client.xreadgroup(
                groupname=settings.REDIS_CONSUMER_GROUP,
                consumername=consumer_name,
                streams={settings.REDIS_STREAM: ">"},
                count=settings.BATCH_SIZE,
                block=settings.STREAM_BLOCK_TIME
            )

            batch = [message for _, message_list in messages or [] for message in message_list]
            if batch:
                logger.debug(f"[LIFECYCLE] consumer={consumer_name} received {len(batch)} messages")
                await _process_batch(redis_client, processor, semaphore, batch)

            await asyncio.sleep(0.1)

        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.exception(f"[LIFECYCLE_ERROR] Loop exception: {e}")
            await asyncio.sleep(5)

    await redis_client.aclose()
    await engine.dispose()


def handle_shutdown(signum, frame):
    """Signal handler for graceful shutdown"""
    shutdown_event.set()


async def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )
    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)

    semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_REQUESTS)
    tasks = [asyncio.create_task(main_loop(name, semaphore)) for name in WORKER_NAMES]
    await asyncio.gather(*tasks)


if __name__ == "__main__":
    asyncio.run(main())
