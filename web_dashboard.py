from flask import Flask, abort, jsonify, render_template_string, request

from config import Config
from database import JobRecord
from lockable import LockManager
from storage import JobStorage
from utils import clock, format_datetime

app = Flask(__name__)

STATES = ("due", "scheduled", "locked", "failed", "exhausted")


def job_state(record, now, lock_manager, max_attempts):
    if lock_manager.is_locked(record, now):
        return "locked"
    if not record.frequency and record.number_attempts > max_attempts:
        return "exhausted"
    if record.failed_at:
        return "failed"
    if record.perform_at <= now:
        return "due"
    return "scheduled"


def _states(records):
    cfg = Config()
    lock_manager = LockManager(JobRecord, lock_timeout=int(cfg.get("lock_timeout")))
    max_attempts = int(cfg.get("max_attempts"))
    now = clock.now()
    return [(r, job_state(r, now, lock_manager, max_attempts)) for r in records]


def job_to_dict(record, state):
    return {
        "id": record.id,
        "name": record.name,
        "args": record.args,
        "queue": record.queue,
        "frequency": record.frequency,
        "perform_at": record.perform_at.isoformat(),
        "locked_at": record.locked_at.isoformat() if record.locked_at else None,
        "number_attempts": record.number_attempts,
        "last_error": record.last_error,
        "failed_at": record.failed_at.isoformat() if record.failed_at else None,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
        "state": state,
    }


def count_states(jobs):
    counts = {"total": len(jobs)}
    for state in STATES:
        counts[state] = 0
    for _, state in jobs:
        counts[state] += 1
    return counts


@app.route("/")
def home():
    jobs = _states(JobStorage().list_jobs())
    counts = count_states(jobs)
    state_filter = request.args.get("state")
    if state_filter:
        jobs = [(r, s) for r, s in jobs if s == state_filter]

    html = """
    <!DOCTYPE html>
    <html>
    <head>
        <title>jobctl Dashboard</title>
        <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css" rel="stylesheet">
        <style>
            body { background-color: #f8f9fa; font-family: 'Segoe UI', sans-serif; }
            h1 { margin-top: 20px; }
            .badge-due { background-color: #ffc107; }
            .badge-scheduled { background-color: #17a2b8; }
            .badge-locked { background-color: #0d6efd; }
            .badge-failed { background-color: #dc3545; }
            .badge-exhausted { background-color: #6c757d; }
            .refresh-info { font-size: 0.9rem; color: gray; }
        </style>
    </head>
    <body>
    <div class="container mt-4">
        <h1>jobctl Dashboard</h1>
        <p class="refresh-info">Auto-refresh every 5 seconds</p>

        <div class="row mt-4">
            {% for k,v in counts.items() %}
            <div class="col-md-2 mb-3">
                <div class="card text-center shadow-sm">
                    <div class="card-body">
                        <h6 class="card-title text-uppercase">{{k}}</h6>
                        <h3>{{v}}</h3>
                    </div>
                </div>
            </div>
            {% endfor %}
        </div>

        <div class="mt-4">
            <h4>Jobs{% if state_filter %} (Filtered: {{state_filter}}){% endif %}</h4>
            <table class="table table-hover table-bordered shadow-sm bg-white">
                <thead class="table-light">
                    <tr>
                        <th>ID</th>
                        <th>Name</th>
                        <th>Queue</th>
                        <th>State</th>
                        <th>Perform At</th>
                        <th>Repeat</th>
                        <th>Attempts</th>
                        <th>Last Error</th>
                    </tr>
                </thead>
                <tbody>
                    {% for j, state in jobs %}
                    <tr>
                        <td>{{j.id}}</td>
                        <td>{{j.name}}</td>
                        <td>{{j.queue}}</td>
                        <td>
                            <span class="badge badge-{{state}} text-light px-2 py-1">{{state}}</span>
                        </td>
                        <td>{{format_datetime(j.perform_at)}}</td>
                        <td>{{j.frequency or 'once'}}</td>
                        <td>{{j.number_attempts}}</td>
                        <td style="max-width:300px; white-space:nowrap; overflow:hidden; text-overflow:ellipsis;">
                            {{j.last_error}}
                        </td>
                    </tr>
                    {% endfor %}
                </tbody>
            </table>
        </div>

        <div class="mt-4 text-center">
            <a href="/" class="btn btn-outline-secondary btn-sm">All</a>
            {% for state in states %}
            <a href="/?state={{state}}" class="btn btn-outline-dark btn-sm">{{state|capitalize}}</a>
            {% endfor %}
        </div>
    </div>

    <script>
    setInterval(function () { location.reload(); }, 5000);
    </script>
    </body>
    </html>
    """

    return render_template_string(
        html,
        counts=counts,
        jobs=jobs,
        states=STATES,
        state_filter=state_filter,
        format_datetime=format_datetime,
    )


@app.route("/api/jobs")
def api_jobs():
    return jsonify([job_to_dict(r, s) for r, s in _states(JobStorage().list_jobs())])


@app.route("/api/jobs/<int:job_id>")
def api_job(job_id):
    record = JobStorage().get_job(job_id)
    if record is None:
        abort(404, description=f"Job {job_id} does not exist.")
    [(record, state)] = _states([record])
    return jsonify(job_to_dict(record, state))


@app.route("/api/status")
def api_status():
    return jsonify(count_states(_states(JobStorage().list_jobs())))


if __name__ == "__main__":
    print("Starting jobctl Dashboard at http://localhost:5000")
    app.run(port=5000, debug=False)
