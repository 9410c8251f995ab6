from jenkins_monitor.main import run

run()
