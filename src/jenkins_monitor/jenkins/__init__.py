from jenkins_monitor.jenkins.rest import JenkinsClientAsync, RetryPolicy
from jenkins_monitor.jenkins.schedule import TimerSpec, extract_timer_spec
from jenkins_monitor.jenkins.urls import build_api_url_from_last_build, build_job_url

__all__ = [
    "JenkinsClientAsync",
    "RetryPolicy",
    "TimerSpec",
    "build_api_url_from_last_build",
    "build_job_url",
    "extract_timer_spec",
]
