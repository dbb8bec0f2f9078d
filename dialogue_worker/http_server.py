import logging
from typing import Optional
from fastapi import FastAPI, HTTPException
import uvicorn
from threading import Thread

logger = logging.getLogger("dialogue_worker")


class HealthServer:
    def __init__(self, worker, port: int = 8000):
        self.worker = worker
        self.port = port
        self.app = FastAPI(title="Dialogue Worker Health API")
        self.setup_routes()
        self.server_thread = None
        self.running = False

    def setup_routes(self):
        """Setup API routes"""

        @self.app.get("/healthz")
        async def health_check():
            """Health check endpoint"""
            try:
                self.worker.record_store.ping()
                return {"ok": True, "status": "healthy"}
            except Exception as e:
                logger.error(f"Health check failed: {str(e)}")
                raise HTTPException(status_code=503, detail=f"Record store unavailable: {str(e)}")

        @self.app.get("/jobs/peek")
        async def peek_jobs():
            """Peek at pending jobs (dev only)"""
            try:
                jobs = self.worker.job_source.get_pending_jobs()
                return {
                    "pending_jobs": len(jobs),
                    "jobs": [
                        {
                            "id": job.id,
                            "job_type": job.job_type,
                            "entity_id": job.entity_id,
                            "attempts": job.attempts,
                            "created_at": job.created_at.isoformat() if job.created_at else None
                        }
                        for job in jobs
                    ]
                }
            except Exception as e:
                logger.error(f"Error peeking jobs: {str(e)}")
                raise HTTPException(status_code=500, detail=f"Error fetching jobs: {str(e)}")

        @self.app.get("/stats")
        async def get_stats():
            """Get worker statistics"""
            return self.worker.get_stats()

    def start(self):
        """Start the HTTP server in a background thread"""
        if self.running:
            return

        def run_server():
            try:
                uvicorn.run(
                    self.app,
                    host="0.0.0.0",
                    port=self.port,
                    log_level="warning",
                    access_log=False
                )
            except Exception as e:
                logger.error(f"HTTP server error: {str(e)}")

        self.server_thread = Thread(target=run_server, daemon=True)
        self.server_thread.start()
        self.running = True

        logger.info(f"Health server started on port {self.port}")

    def stop(self):
        """Stop the HTTP server"""
        self.running = False
        logger.info("Health server stopped")


def start_health_server(worker, enabled: bool, port: int = 8000) -> Optional[HealthServer]:
    """Start the health server if enabled"""
    if enabled:
        server = HealthServer(worker, port)
        server.start()
        return server
    return None
