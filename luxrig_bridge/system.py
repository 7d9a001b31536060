"""
Host metrics: CPU, memory and NVIDIA GPU.

GPU stats come from nvidia-smi; hosts without it simply report
{"available": false}.
"""
import asyncio
import logging
import platform
import shutil
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

NVIDIA_SMI_QUERY = [
    "--query-gpu=name,utilization.gpu,memory.used,memory.total,temperature.gpu,power.draw",
    "--format=csv,noheader,nounits",
]


def _to_number(value: str) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_nvidia_smi(output: str) -> dict:
    """Parse the first line of nvidia-smi CSV output."""
    lines = [line for line in output.strip().splitlines() if line.strip()]
    if not lines:
        return {"available": False}

    fields = [f.strip() for f in lines[0].split(",")]
    if len(fields) < 6:
        return {"available": False}

    name, util, mem_used, mem_total, temp, power = fields[:6]
    mem_used_mb = _to_number(mem_used)
    mem_total_mb = _to_number(mem_total)

    gpu = {
        "available": True,
        "name": name,
        "utilization": _to_number(util),
        "memoryUsedGB": None,
        "memoryTotalGB": None,
        "memoryPercent": None,
        "temperature": _to_number(temp),
        "powerDraw": _to_number(power),
    }
    if mem_used_mb is not None and mem_total_mb:
        gpu["memoryUsedGB"] = f"{mem_used_mb / 1024:.1f}"
        gpu["memoryTotalGB"] = f"{mem_total_mb / 1024:.1f}"
        gpu["memoryPercent"] = f"{mem_used_mb / mem_total_mb * 100:.1f}"
    return gpu


class SystemService:
    """Collects host metrics for the status snapshot."""

    def __init__(self, gpu_timeout: float = 3.0):
        self._gpu_timeout = gpu_timeout
        self._nvidia_smi = shutil.which("nvidia-smi")

    async def get_gpu(self) -> dict:
        if not self._nvidia_smi:
            return {"available": False}

        try:
            process = await asyncio.create_subprocess_exec(
                self._nvidia_smi,
                *NVIDIA_SMI_QUERY,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug("nvidia-smi failed to start: %s", e)
            return {"available": False}

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self._gpu_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("nvidia-smi timed out after %.1fs", self._gpu_timeout)
            return {"available": False}

        if process.returncode != 0:
            return {"available": False}
        return parse_nvidia_smi(stdout.decode(errors="replace"))

    def get_cpu(self) -> dict:
        return {
            "name": platform.processor() or platform.machine(),
            "cores": psutil.cpu_count(logical=True),
            # Non-blocking: percentage since the previous call
            "utilization": psutil.cpu_percent(interval=None),
        }

    def get_memory(self) -> dict:
        memory = psutil.virtual_memory()
        gb = 1024 ** 3
        return {
            "totalGB": f"{memory.total / gb:.1f}",
            "usedGB": f"{(memory.total - memory.available) / gb:.1f}",
            "percentUsed": f"{memory.percent:.1f}",
        }

    async def get_metrics(self) -> dict:
        """Full host metrics. Never raises."""
        try:
            gpu = await self.get_gpu()
        except Exception as e:
            logger.warning("GPU metrics failed: %s", e)
            gpu = {"available": False}

        try:
            cpu = self.get_cpu()
            memory = self.get_memory()
        except Exception as e:
            logger.warning("Host metrics failed: %s", e)
            cpu, memory = {}, {}

        return {"gpu": gpu, "cpu": cpu, "memory": memory}
