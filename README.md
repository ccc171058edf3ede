# shelfbot

Planning logic for a dual-arm robot that picks items from shelf slots and
places them on tables. Everything works on plain Python objects: frames live
in an in-process transform tree, services are `ServiceClient` objects backed
by a handler callable you bind, and the arm motion and fold elevator are
objects you pass in. This lets the whole workflow run and be tested off the
robot.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Modules

- `shelfbot.geometry` – frozen dataclasses `Vector3`, `Quaternion`, `Pose`
  and `Transform`. `Quaternion.from_rpy`, `norm`, `normalized`,
  `angular_distance` and `rotate`; `Transform` keeps its rotation normalised
  and supports composition with `a @ b`, `inverse()` and `apply(point)`.
  Helpers: `get_g_from_pose`, `get_g_from_rpy`, `get_g_from_quat`,
  `cvt_g_to_pose`, `compose_pose_msg` (raises `ValueError` unless given seven
  values), `pose_translation` (moves a pose along its own axes),
  `are_poses_closed` and `format_pose`.
- `shelfbot.node_base` – `ServiceClient(name, handler=None)` with `bind`,
  `wait_for_service` and `call` (raises `TimeoutError` when the handler is too
  slow), and `ServiceCaller`, whose `cli_wait_for_srv` retries a bounded
  number of times and whose `send_sync_req` returns the response or raises
  `ServiceError` when waiting fails, the call fails or the response has
  `success` false.
- `shelfbot.messages` – dataclasses `RackInfo`, `TableInfo`, `ObjectPose`,
  `PickPlanResult`, `PlacePlanResult`, `PickTask`, `PlaceTask`, `PickResult`,
  `PlaceResult`, `PickGoal`, `PlaceGoal`, `ScanSkuGoal`, `ReplenishGoal`, and
  the `RobotStatus` enum.
- `shelfbot.planner` – `RobotArm` (with a `label` such as `"left_arm"`),
  `parse_arm` (accepts names like `"left"` or `"right_action_arm"`, raises
  `ValueError` otherwise), `TransformStamped`, `TransformBuffer` (stores
  parent/child transforms and resolves the transform between any two
  connected frames, raising `TransformLookupError` otherwise) and
  `PlannerBase`, which sends transforms into its buffer and looks them up
  with `get_tf` (returns `None` on failure).
- `shelfbot.tf_broadcaster` – `TfBroadcaster`, which on creation puts a
  static frame for each slot of shelves 2–4 of `rack_1` into the buffer and
  buffers the `map` → `base_footprint` frame; `tf_pub_cb` re-sends the
  buffered frames, and `start`/`stop` (or a `with` block) do so periodically
  in a background thread.
- `shelfbot.poses_loader` – `parse_pose` (from `position` plus either `rpy`
  or `orientation`), `load_pose`, `load_poses` (by `sku_id`),
  `load_ordered_poses` (also returns `(scan_order, sku_id)` pairs sorted by
  order), `load_waypoints` (sorted by `order`) and `parse_yaml`. Malformed
  input raises `PoseFormatError`; invalid entries inside a list are logged and
  skipped.
- `shelfbot.workflow_planner` – `WorkflowConfig` (thresholds, offsets,
  attempt counts and tcp-to-camera calibrations) and `WorkflowPlanner`, with
  camera calibration (`setup_camera_transform`), a frame buffer
  (`push_tf_buf`, `clear_tf_buf`, `tf_pub_cb`, `start`/`stop`), camera
  lifecycle calls, vision and plan requests (`get_obj_poses`,
  `get_pick_plan`, `get_place_plan`), `get_scan_pose` and
  `extract_object_pose`. Also `get_flat_link` and `get_place_link`.
- `shelfbot.strategy` – `optimal_pick_elevation`, `optimal_place_elevation`,
  `try_to_scan` (re-scans at sideways offsets from `rescan_offsets`),
  `try_to_pick_up` and `try_to_place_down`, each taking a `WorkflowPlanner`.
- `shelfbot.actions` – `WorkflowActions` with goal, cancel, accepted and
  execution handlers for the pick, place, scan-SKU and replenish actions,
  plus `GoalHandle`, `GoalResponse` and `CancelResponse`.

## What you supply

`WorkflowPlanner` expects:

- `fold_elev_driver` with `rotate_to_abs_front()`, `exec_wps(waypoints)` and
  `elevate(x, z, yaw)`, each returning a truth value;
- `motion_planner` with `pick(arm, plan, speed)`, `place(arm, plan, speed)`,
  `move_to(arm, pose, speed)`, `move_to_action_pose(arm, speed)` and
  `move_to_holding_pose(arm, speed)`;
- handlers bound to its service clients (`camera_cli[...]`,
  `get_obj_pose_tri_cli`, `pick_plan_cli`, `place_plan_cli`) that return
  responses with a `success` attribute, such as `PickPlanResponse` from
  `shelfbot.workflow_planner`;
- the frames it looks up (slot links, table place links, tcp frames, `link4`,
  `map`) in its `tf_buffer`.

## Examples

```python
from math import pi
from shelfbot.geometry import get_g_from_rpy, cvt_g_to_pose, format_pose

g = get_g_from_rpy(0.9, 1.4, 0.0, 0.0, 0.0, pi / 2)
print(format_pose(cvt_g_to_pose(g)))
```

```python
from shelfbot.geometry import Pose, Vector3
from shelfbot.planner import PlannerBase

planner = PlannerBase("demo")
planner.send_static_transform(Pose(Vector3(1.0, 0.0, 0.0)), "map", "base_footprint")
planner.send_static_transform(Pose(Vector3(0.0, 0.5, 0.0)), "base_footprint", "left_tcp")
print(planner.get_tf("map", "left_tcp").transform.origin)  # Vector3(x=1.0, y=0.5, z=0.0)
```

```python
from shelfbot.workflow_planner import get_flat_link, get_place_link

get_flat_link(1, 3)    # "rack_1_shelf_3_flat_link"
get_place_link(2, 1)   # "table_2_place_1_link"
```

## What this package does not do

- It has no command-line program and does not run as a networked robot node;
  frames, services and actions exist only inside the Python process.
- It contains no arm motion planner, no fold elevator driver, no vision
  service and no gripper control; these must be provided as described above.
- `try_to_pick_up` currently scans but then uses a fixed detection in front
  of the camera rather than the vision result.
- The scan-SKU and replenish actions only clear the frame buffer and report
  success.