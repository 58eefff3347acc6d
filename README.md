# objectmapping

Building blocks for object-level SLAM. Each object is a 3D Gaussian: a mean position and
an accumulated covariance. Objects are created by triangulating the same instance seen in
two keyframes. New observations grow the covariance, and a robust least-squares fit refines
the position. The package can project objects back into a camera as image ellipses, and it
scores how well instance masks overlap.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Modules

- `objectmapping.geometry`: the integer rectangle `Rect`, with `area`, `is_empty`,
  `contains` (the right and bottom edges are excluded), `intersection`, `center` and
  `to_contour`. It also has the overlap tests `rect_overlaps_contour` and `rects_overlap`.
- `objectmapping.ellipsoid`: `ellipsoid_points` returns `(resolution + 1) ** 2` points on
  the surface of the ellipsoid given by a 3x3 covariance and a centre.
- `objectmapping.instances`: the frame-level data model.
  - `InstanceType` tells where an instance came from: SEG, SAM, RAFT or MAP.
  - `CameraView` holds the intrinsics `k` and the world-to-camera `pose`, and gives
    `rotation`, `translation`, `center`, `fx`, `fy`, `cx` and `cy`.
  - `FrameInstance` can be built from a rectangle with `FrameInstance.from_rect`.
  - `AssoMatchRes` is a comparison record; `describe` formats it as one line.
  - `InstanceMask` gives out fresh ids with `next_id`.
  - `BoxFrame` is a keyframe with its image and named masks.
  - The label predicates are `is_table`, `is_floor`, `is_wall`, `is_ceiling` and
    `is_static`.
- `objectmapping.gaussian_object`: `GaussianObject` has `position` and `covariance`
  properties and keeps its observations (`add_observation`, `get_observation`,
  `observations`). `distance_3d` gives the Mahalanobis distance to another object, and
  `project_2d` projects the object into an image `Ellipse2D`. `Ellipse2D` provides
  `bounding_rect` and `iou`.
- `objectmapping.visualizer`: `projected_ellipse` and `project_ellipsoid` compute
  image-space geometry for drawing: the ellipse, the projected centre and the outline of the
  ellipsoid surface. They do not draw anything.
- `objectmapping.map_manager`: `triangulate_point`, `point_to_ray`, `instance_covariance`,
  `rect_covariance` and `projection_jacobian`. Objects are created with
  `initialize_object` and updated with `update_object_incremental`. `update_object_ekf`
  returns the Kalman innovation and gain and advances the observation count, but leaves the
  state unchanged.
- `objectmapping.optimizer`: `MonoObjectEdge` is a reprojection error term. It provides
  `project`, `error`, `jacobian` and `is_depth_positive`. `optimize_object_position` refines
  an object's mean by Levenberg–Marquardt with a Huber cost over all of its observations.
  Objects seen fewer than twice are left unchanged.
- `objectmapping.matching`:
  - `mask_iou` scores the overlap of two masks; against a background mask it divides by the
    first mask's area.
  - `calculate_iou` compares every earlier instance (except the background, id 0) with
    every current one.
  - `check_add_new_instance` decides whether a candidate lies mostly in the background and
    matches no instance.
  - `add_new_instance` registers a candidate in a mask under a fresh id.
- `objectmapping.object_projection`:
  - `local_object_maps` gathers the objects linked to a mask and to the masks that observe
    them.
  - `project_object_maps` projects those objects into a view.
  - `map_frame_instances` turns the projections into MAP instances.
  - `project_neighbour_objects` does all of these steps together, starting from a previous
    mask.

## Example: rectangles

```python
from objectmapping.geometry import Rect, rects_overlap

a = Rect(0, 0, 10, 10)
b = Rect(5, 5, 10, 10)
print(a.intersection(b).area())  # 25
print(rects_overlap(a, b))       # True
```

## Example: mask overlap

```python
import numpy as np
from objectmapping.matching import mask_iou

first = np.zeros((4, 4), dtype=np.uint8)
second = np.zeros((4, 4), dtype=np.uint8)
first[0:2, 0:2] = 255
second[1:3, 1:3] = 255
print(mask_iou(first, second))  # 1 shared pixel over 7 in the union
```

## What the package does not do

The package gives the pieces of object association but not a full association pipeline.
It does not:

- run the frame-to-frame, frame-to-map or segmentation-result association steps;
- build or send segmentation requests;
- keep shared system state across keyframes;
- score outliers.

It reads no images and runs no detector, segmenter or optical flow. It draws nothing and
stores nothing on disk. Camera poses, masks and contours have to be supplied by the caller.

## Running the tests

```
pytest
```