from infra.jobs.dispatcher import InngestDispatcher, JobDispatcher, LocalDispatcher

__all__ = ["InngestDispatcher", "JobDispatcher", "LocalDispatcher"]
