"""Run the scene_video workflow: two key frames, then a video between them."""

import asyncio
import os

from genflow import create_engine
from genflow.config import load_config


async def main():
    config = load_config()
    config.providers_file = config.providers_file or os.path.join(
        os.path.dirname(__file__), "providers.example.yaml"
    )
    engine = create_engine(config)

    try:
        started = await engine.start(
            "scene_video",
            owner_id="demo-user",
            params={
                "imageModel": "Flux Image",
                "videoModel": "Kling Video",
                "prompt": "two knights duel on a stone bridge at dusk",
                "duration": 5,
            },
        )
        print(f"Job {started.job_id} started with {len(started.tasks)} steps")

        view = await engine.wait(started.job_id)
        print(f"Status: {view.job.status.value}")
        for task in view.tasks:
            print(f"  [{task.step_index}] {task.step_type}: {task.status.value} {task.result_data or task.error_message}")
    finally:
        await engine.aclose()


if __name__ == "__main__":
    asyncio.run(main())
