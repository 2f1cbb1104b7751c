"""Flask app and routes for the CCTV event monitor JSON API."""

import json
import logging
import queue

from flask import Flask, Response, jsonify, request

from cctv_monitor.exceptions import EventNotFoundError, OperationTimeoutError, StorageError
from cctv_monitor.logging_utils import error_buffer

logger = logging.getLogger('cctv-monitor')

# Seconds between SSE keep-alive comments when no notification arrives.
SSE_KEEPALIVE_SECONDS = 15


def create_app(orchestrator):
    """Create Flask app with all endpoints. Routes close over orchestrator."""
    app = Flask(__name__)

    event_service = orchestrator.event_service
    matcher = orchestrator.matcher
    media = orchestrator.media
    broadcaster = orchestrator.broadcaster

    @app.errorhandler(EventNotFoundError)
    def _not_found(e):
        return jsonify({"success": False, "error": "Event not found", "eventId": e.event_id}), 404

    @app.errorhandler(StorageError)
    def _storage_error(e):
        logger.error(f"Storage failure: {e}")
        return jsonify({"success": False, "error": "Storage failure", "details": str(e)}), 500

    @app.errorhandler(OperationTimeoutError)
    def _timeout(e):
        return jsonify({"success": False, "error": "Operation timed out", "details": str(e)}), 504

    def _json_body() -> dict:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    @app.route('/api/events', methods=['GET'])
    def list_events():
        return jsonify([e.to_dict() for e in event_service.list_events()])

    @app.route('/api/events', methods=['POST'])
    def create_event():
        """Ingest a candidate event from the mail/file intake."""
        body = _json_body()
        if not body.get('messageId') or not body.get('date'):
            return jsonify({"success": False, "error": "messageId and date are required"}), 400
        created = event_service.create_event(body)
        if created is None:
            return jsonify({"success": True, "duplicate": True})
        return jsonify({"success": True, "duplicate": False, "event": created.to_dict()}), 201

    @app.route('/api/events/<int:event_id>/acknowledge', methods=['POST'])
    def acknowledge_event(event_id):
        body = _json_body()
        tags = body.get('tags')
        if tags is not None and not isinstance(tags, list):
            return jsonify({"success": False, "error": "tags must be a list"}), 400
        locked = body.get('locked')
        if locked is not None and not isinstance(locked, bool):
            return jsonify({"success": False, "error": "locked must be a boolean"}), 400
        event = event_service.acknowledge(
            event_id,
            note=body.get('note'),
            tags=tags,
            locked=locked,
            user=body.get('user') if isinstance(body.get('user'), dict) else None,
        )
        return jsonify({"success": True, "event": event.to_dict()})

    @app.route('/api/retention/events/<int:event_id>/lock', methods=['PUT'])
    def toggle_lock(event_id):
        locked = _json_body().get('locked')
        if not isinstance(locked, bool):
            return jsonify({"success": False, "error": "locked must be a boolean"}), 400
        event = event_service.toggle_lock(event_id, locked)
        message = 'Event locked successfully' if locked else 'Event unlocked successfully'
        return jsonify({"success": True, "message": message, "event": event.to_dict()})

    @app.route('/api/events/<int:event_id>/video', methods=['POST'])
    def attach_video(event_id):
        """Correlate a video with the event unless one is already attached."""
        result = event_service.attach_video_if_missing(event_id)
        return jsonify(result.to_dict())

    @app.route('/api/events/backfill-video-paths', methods=['POST'])
    def backfill_video_paths():
        return jsonify({"success": True, **event_service.backfill_video_paths()})

    @app.route('/api/videos/list')
    def list_videos():
        """List videos as YYYY/MM/DD/<file>; date=YYYYMMDD scopes to one day."""
        camera = request.args.get('camera') or None
        date_str = request.args.get('date')
        day = date_str if date_str and len(date_str) == 8 else None
        return jsonify(media.list_candidates(camera, day=day))

    @app.route('/api/videos/notify-upload', methods=['POST'])
    def notify_upload():
        """Uploader notice that a clip was stored; attaches it to pending events of that camera."""
        body = _json_body()
        video_path = body.get('path')
        camera = body.get('camera')
        if not isinstance(video_path, str) or not video_path or not isinstance(camera, str) or not camera:
            return jsonify({"success": False, "error": "path and camera are required"}), 400
        timestamp = body.get('timestamp') if isinstance(body.get('timestamp'), str) else None
        result = event_service.handle_video_upload(video_path, camera, timestamp=timestamp)
        return jsonify({"success": True, "message": "Upload notification sent", **result})

    @app.route('/api/retention/cleanup', methods=['POST'])
    def run_cleanup():
        retention_days = _json_body().get('retentionDays')
        if retention_days is not None and (not isinstance(retention_days, int)
                                           or isinstance(retention_days, bool)
                                           or retention_days < 1):
            return jsonify({"success": False, "error": "retentionDays must be a positive integer"}), 400
        stats = orchestrator.run_retention_sweep(retention_days)
        return jsonify({"success": True, "stats": stats.to_dict()})

    @app.route('/api/retention/config', methods=['GET'])
    def get_retention_config():
        return jsonify({"success": True, "config": {"retentionDays": orchestrator.retention_days}})

    @app.route('/api/retention/config', methods=['PUT'])
    def update_retention_config():
        retention_days = _json_body().get('retentionDays')
        if not isinstance(retention_days, int) or isinstance(retention_days, bool) or retention_days < 1:
            return jsonify({"success": False, "error": "Invalid retention days value"}), 400
        orchestrator.retention_days = retention_days
        return jsonify({"success": True, "config": {"retentionDays": retention_days}})

    @app.route('/api/retention/debug/video-match/<int:event_id>')
    def debug_video_match(event_id):
        """Explain how the matcher scores candidate videos for one event."""
        event = event_service.get_event(event_id)
        candidates = [
            {
                "path": media.stored_video_path(c.relative_path),
                "videoTime": c.video_time.isoformat(),
                "deltaMs": c.delta_ms,
                "toleranceMs": tolerance,
                "withinTolerance": c.delta_ms <= tolerance,
            }
            for c, tolerance in matcher.evaluate_candidates(event)
        ]
        return jsonify({
            "event": event.to_dict(),
            "candidates": candidates,
            "bestMatch": matcher.find_best_match(event).to_dict(),
        })

    @app.route('/api/retention/debug/directory-structure')
    def debug_directory_structure():
        """Per-day file counts and cameras under the videos root."""
        tree = media.describe_tree()
        if tree is None:
            return jsonify({"success": False, "error": "Videos directory not found",
                            "path": media.videos_root}), 404
        return jsonify({
            "success": True,
            "structure": {"base": tree["base"], "years": tree["years"]},
            "stats": tree["stats"],
        })

    @app.route('/api/settings/tags', methods=['GET'])
    def get_tags():
        return jsonify(orchestrator.settings.get_tags())

    @app.route('/api/settings/tags', methods=['POST'])
    def update_tags():
        try:
            tags = orchestrator.settings.set_tags(_json_body().get('tags'))
        except ValueError as e:
            return jsonify({"success": False, "error": "Invalid tags format", "details": str(e)}), 400
        return jsonify({"success": True, "tags": tags})

    @app.route('/api/events/updates')
    def event_updates():
        """Server-sent events stream of broadcaster notifications."""
        def _stream():
            q = broadcaster.subscribe()
            try:
                yield 'data: {"type":"connected"}\n\n'
                while True:
                    try:
                        payload = q.get(timeout=SSE_KEEPALIVE_SECONDS)
                    except queue.Empty:
                        yield ': keep-alive\n\n'
                        continue
                    yield f"data: {json.dumps(payload)}\n\n"
            finally:
                broadcaster.unsubscribe(q)

        return Response(_stream(), mimetype='text/event-stream', headers={
            'Cache-Control': 'no-cache',
            'X-Accel-Buffering': 'no',
        })

    @app.route('/api/status')
    def status():
        retention = orchestrator.retention_service
        last_stats = retention.last_sweep_stats
        return jsonify({
            "retentionDays": orchestrator.retention_days,
            "lastSweepTime": retention.last_sweep_time.isoformat() if retention.last_sweep_time else None,
            "lastSweep": last_stats.to_dict() if last_stats else None,
            "subscribers": broadcaster.subscriber_count,
            "recentErrors": error_buffer.get_all(),
            "errorSummary": error_buffer.summary(),
        })

    return app
